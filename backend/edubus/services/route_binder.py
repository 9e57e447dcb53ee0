from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from datetime import date, datetime, timezone
import logging

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from edubus.core.exceptions import ConflictError, NotFoundError, ValidationError
from edubus.models.route import Route
from edubus.models.route_schedule import RouteSchedule
from edubus.models.schedule import Schedule
from edubus.schemas.route_schedule import RouteScheduleCreate, RouteScheduleUpdate

logger = logging.getLogger(__name__)


def _binding_sort_key(binding: RouteSchedule) -> tuple:
    return (binding.priority, binding.created_at, binding.id)


class BindingResolver:
    """Resolve the authoritative binding per route from a preloaded binding list.

    Bindings are grouped by route and sorted once, so resolving a date only
    walks the candidates of the routes involved.
    """

    def __init__(self, bindings: Iterable[RouteSchedule]):
        grouped: dict[str, list[RouteSchedule]] = defaultdict(list)
        for binding in bindings:
            if binding.is_active and not binding.is_deleted:
                grouped[binding.route_id].append(binding)
        self._by_route = {
            route_id: sorted(items, key=_binding_sort_key, reverse=True) for route_id, items in grouped.items()
        }

    @property
    def route_ids(self) -> list[str]:
        return list(self._by_route)

    def resolve(self, route_id: str, on_date: date) -> RouteSchedule | None:
        for binding in self._by_route.get(route_id, ()):
            if binding.covers(on_date):
                return binding
        return None

    def winners_for(self, on_date: date) -> dict[str, RouteSchedule]:
        winners: dict[str, RouteSchedule] = {}
        for route_id in self._by_route:
            binding = self.resolve(route_id, on_date)
            if binding is not None:
                winners[route_id] = binding
        return winners


def get_route(db: Session, route_id: str) -> Route | None:
    return db.get(Route, route_id)


def _require_route(db: Session, route_id: str) -> Route:
    route = get_route(db, route_id)
    if route is None or route.is_deleted:
        raise NotFoundError("Route", route_id)
    if not route.is_active:
        raise NotFoundError("Route", route_id, reason="is inactive")
    return route


def _require_schedule(db: Session, schedule_id: str) -> Schedule:
    schedule = db.get(Schedule, schedule_id)
    if schedule is None or schedule.is_deleted:
        raise NotFoundError("Schedule", schedule_id)
    if not schedule.is_active:
        raise NotFoundError("Schedule", schedule_id, reason="is inactive")
    return schedule


def _validate_window(effective_from: date, effective_to: date | None) -> None:
    if effective_to is not None and effective_to <= effective_from:
        raise ValidationError(
            "Effective end date must be after the effective start date",
            details={"effective_from": effective_from.isoformat(), "effective_to": effective_to.isoformat()},
        )


def _ensure_not_duplicate(
    db: Session, payload: RouteScheduleCreate | RouteScheduleUpdate, *, exclude_id: str | None = None
) -> None:
    stmt = select(RouteSchedule.id).where(
        RouteSchedule.is_deleted.is_(False),
        RouteSchedule.route_id == payload.route_id,
        RouteSchedule.schedule_id == payload.schedule_id,
        RouteSchedule.priority == payload.priority,
        RouteSchedule.effective_from == payload.effective_from,
    )
    if payload.effective_to is None:
        stmt = stmt.where(RouteSchedule.effective_to.is_(None))
    else:
        stmt = stmt.where(RouteSchedule.effective_to == payload.effective_to)
    if exclude_id is not None:
        stmt = stmt.where(RouteSchedule.id != exclude_id)

    existing_id = db.execute(stmt.limit(1)).scalar_one_or_none()
    if existing_id is not None:
        raise ConflictError(
            "An identical route schedule binding already exists",
            details={"conflicting_binding_id": existing_id},
        )


def get_binding(db: Session, binding_id: str) -> RouteSchedule:
    binding = db.get(RouteSchedule, binding_id)
    if binding is None or binding.is_deleted:
        raise NotFoundError("RouteSchedule", binding_id)
    return binding


def create_binding(db: Session, payload: RouteScheduleCreate) -> RouteSchedule:
    _validate_window(payload.effective_from, payload.effective_to)
    _require_route(db, payload.route_id)
    _require_schedule(db, payload.schedule_id)
    _ensure_not_duplicate(db, payload)

    binding = RouteSchedule(
        route_id=payload.route_id,
        schedule_id=payload.schedule_id,
        effective_from=payload.effective_from,
        effective_to=payload.effective_to,
        priority=payload.priority,
        is_active=payload.is_active,
        created_at=datetime.now(timezone.utc),
    )
    db.add(binding)
    db.commit()
    db.refresh(binding)
    logger.info(
        "Bound schedule %s to route %s (priority %d)", binding.schedule_id, binding.route_id, binding.priority
    )
    return binding


def update_binding(db: Session, binding_id: str, payload: RouteScheduleUpdate) -> RouteSchedule:
    binding = get_binding(db, binding_id)
    _validate_window(payload.effective_from, payload.effective_to)
    _require_route(db, payload.route_id)
    _require_schedule(db, payload.schedule_id)
    _ensure_not_duplicate(db, payload, exclude_id=binding.id)

    binding.route_id = payload.route_id
    binding.schedule_id = payload.schedule_id
    binding.effective_from = payload.effective_from
    binding.effective_to = payload.effective_to
    binding.priority = payload.priority
    binding.is_active = payload.is_active
    db.commit()
    db.refresh(binding)
    return binding


def delete_binding(db: Session, binding_id: str) -> RouteSchedule:
    binding = get_binding(db, binding_id)
    binding.is_deleted = True
    binding.is_active = False
    db.commit()
    logger.info("Deleted route schedule binding %s", binding.id)
    return binding


def list_bindings(
    db: Session,
    *,
    route_id: str | None = None,
    schedule_id: str | None = None,
    active_only: bool = False,
) -> list[RouteSchedule]:
    stmt = select(RouteSchedule).where(RouteSchedule.is_deleted.is_(False))
    if route_id:
        stmt = stmt.where(RouteSchedule.route_id == route_id)
    if schedule_id:
        stmt = stmt.where(RouteSchedule.schedule_id == schedule_id)
    if active_only:
        stmt = stmt.where(RouteSchedule.is_active.is_(True))
    stmt = stmt.order_by(RouteSchedule.route_id, RouteSchedule.priority.desc(), RouteSchedule.created_at.desc())
    return list(db.execute(stmt).scalars())


def active_bindings_for_schedule(db: Session, schedule_id: str) -> list[RouteSchedule]:
    stmt = select(RouteSchedule).where(
        RouteSchedule.schedule_id == schedule_id,
        RouteSchedule.is_active.is_(True),
        RouteSchedule.is_deleted.is_(False),
    )
    return list(db.execute(stmt).scalars())


def resolve_binding(db: Session, route_id: str, on_date: date) -> RouteSchedule | None:
    """Return the authoritative binding for ``route_id`` on ``on_date``, if any."""
    stmt = (
        select(RouteSchedule)
        .where(
            RouteSchedule.route_id == route_id,
            RouteSchedule.is_active.is_(True),
            RouteSchedule.is_deleted.is_(False),
            RouteSchedule.effective_from <= on_date,
            or_(RouteSchedule.effective_to.is_(None), RouteSchedule.effective_to >= on_date),
        )
        .order_by(RouteSchedule.priority.desc(), RouteSchedule.created_at.desc(), RouteSchedule.id.desc())
        .limit(1)
    )
    return db.execute(stmt).scalar_one_or_none()
