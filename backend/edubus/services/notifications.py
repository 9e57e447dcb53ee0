from __future__ import annotations

from datetime import datetime, timezone
import logging

from anyio import from_thread
from sqlalchemy import and_, select
from sqlalchemy.orm import Session

from edubus.core.exceptions import NotFoundError
from edubus.core.security import Role
from edubus.models.notification import Notification, NotificationRead, NotificationType
from edubus.models.schedule import Schedule
from edubus.services.notification_hub import notification_hub

logger = logging.getLogger(__name__)

SCHEDULE_CHANGE_AUDIENCE: tuple[Role, ...] = (Role.admin, Role.scheduler)
SCHEDULE_TRACKED_FIELDS: tuple[str, ...] = ("name", "start_time", "end_time", "rrule")


def _safe_iso(value: datetime | None) -> str:
    if value is None:
        return datetime.now(timezone.utc).isoformat()
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc).isoformat()
    return value.isoformat()


def notification_to_event_payload(notification: Notification, *, event: str = "notification.created") -> dict:
    return {
        "event": event,
        "notification": {
            "id": notification.id,
            "audience_role": notification.audience_role.value,
            "title": notification.title,
            "message": notification.message,
            "notification_type": notification.notification_type.value,
            "related_entity_type": notification.related_entity_type,
            "related_entity_id": notification.related_entity_id,
            "details": notification.details,
            "created_at": _safe_iso(notification.created_at),
        },
    }


def publish_realtime_notification(notification: Notification, *, event: str = "notification.created") -> None:
    payload = notification_to_event_payload(notification, event=event)
    try:
        from_thread.run(notification_hub.publish, notification.audience_role.value, payload)
    except Exception:  # pragma: no cover - runtime environment dependent
        logger.debug("Unable to push realtime notification to %s", notification.audience_role.value, exc_info=True)


def create_notification(
    db: Session,
    *,
    audience_role: Role,
    title: str,
    message: str,
    notification_type: NotificationType = NotificationType.system,
    related_entity_type: str | None = None,
    related_entity_id: str | None = None,
    details: dict | None = None,
    deliver_realtime: bool = True,
) -> Notification:
    record = Notification(
        audience_role=audience_role,
        title=title,
        message=message,
        notification_type=notification_type,
        related_entity_type=related_entity_type,
        related_entity_id=related_entity_id,
        details=details or {},
    )
    db.add(record)
    db.flush()

    if deliver_realtime:
        publish_realtime_notification(record, event="notification.created")
    return record


def list_notifications_for(
    db: Session,
    *,
    principal_id: str,
    audience_role: Role,
    notification_type: NotificationType | None = None,
    is_read: bool | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[tuple[Notification, datetime | None]]:
    """Notifications for a role paired with the caller's own read time, newest first."""
    stmt = (
        select(Notification, NotificationRead.read_at)
        .outerjoin(
            NotificationRead,
            and_(
                NotificationRead.notification_id == Notification.id,
                NotificationRead.principal_id == principal_id,
            ),
        )
        .where(Notification.audience_role == audience_role)
        .order_by(Notification.created_at.desc(), Notification.id)
    )
    if notification_type:
        stmt = stmt.where(Notification.notification_type == notification_type)
    if is_read is True:
        stmt = stmt.where(NotificationRead.id.is_not(None))
    elif is_read is False:
        stmt = stmt.where(NotificationRead.id.is_(None))
    rows = db.execute(stmt.offset(offset).limit(limit)).all()
    return [(notification, read_at) for notification, read_at in rows]


def mark_notification_read(
    db: Session,
    notification_id: str,
    *,
    principal_id: str,
    audience_role: Role,
) -> tuple[Notification, datetime]:
    notification = db.get(Notification, notification_id)
    if notification is None or notification.audience_role != audience_role:
        raise NotFoundError("Notification", notification_id)

    receipt = db.execute(
        select(NotificationRead).where(
            NotificationRead.notification_id == notification_id,
            NotificationRead.principal_id == principal_id,
        )
    ).scalar_one_or_none()
    if receipt is None:
        receipt = NotificationRead(
            notification_id=notification_id,
            principal_id=principal_id,
            read_at=datetime.now(timezone.utc),
        )
        db.add(receipt)
        db.commit()
        db.refresh(receipt)
    return notification, receipt.read_at


def schedule_change_details(schedule: Schedule, previous: dict[str, str]) -> dict[str, str]:
    details = {"scheduleId": schedule.id}
    for field in SCHEDULE_TRACKED_FIELDS:
        details[f"old_{field}"] = previous.get(field, "")
        details[f"new_{field}"] = getattr(schedule, field)
    return details


def notify_schedule_change(db: Session, *, schedule: Schedule, previous: dict[str, str]) -> list[Notification]:
    """Record a schedule-change notice for schedule administrators.

    Fire-and-forget: a failure is logged and rolled back to a savepoint, and
    never propagates to the caller.
    """
    results: list[Notification] = []
    try:
        with db.begin_nested():
            for role in SCHEDULE_CHANGE_AUDIENCE:
                results.append(
                    create_notification(
                        db,
                        audience_role=role,
                        title="Schedule Change Notification",
                        message=f"Schedule '{schedule.name}' has been updated.",
                        notification_type=NotificationType.schedule_change,
                        related_entity_type="Schedule",
                        related_entity_id=schedule.id,
                        details=schedule_change_details(schedule, previous),
                    )
                )
    except Exception:
        logger.warning("Failed to create notification for schedule update %s", schedule.id, exc_info=True)
        return []
    return results
