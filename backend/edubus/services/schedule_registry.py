from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timezone
import logging
from zoneinfo import ZoneInfo

from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session

from edubus.core.exceptions import ConflictError, NotFoundError, ValidationError
from edubus.models.route_schedule import RouteSchedule
from edubus.models.schedule import Schedule, ScheduleTimeOverride
from edubus.schemas.schedule import ScheduleCreate, ScheduleUpdate, TimeOverrideIn
from edubus.services.notifications import SCHEDULE_TRACKED_FIELDS, notify_schedule_change
from edubus.services.recurrence import RecurrenceRule, iter_matching_dates, validate_rrule
from edubus.services.timeofday import normalize_time_of_day, parse_time_of_day, resolve_timezone

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScheduleDefinition:
    start: time
    end: time
    tz: ZoneInfo
    rule: RecurrenceRule


def validate_schedule_definition(
    *,
    start_time: str,
    end_time: str,
    timezone_id: str,
    rrule: str | None,
    effective_from: date,
    effective_to: date | None,
) -> ScheduleDefinition:
    start = parse_time_of_day(start_time, field_name="start_time")
    end = parse_time_of_day(end_time, field_name="end_time")
    if start == end:
        raise ValidationError("Start time and end time must differ", details={"start_time": start_time})
    tz = resolve_timezone(timezone_id)
    if effective_to is not None and effective_to <= effective_from:
        raise ValidationError(
            "Effective end date must be after the effective start date",
            details={"effective_from": effective_from.isoformat(), "effective_to": effective_to.isoformat()},
        )
    rule = validate_rrule(rrule)
    return ScheduleDefinition(start=start, end=end, tz=tz, rule=rule)


def definition_for(schedule: Schedule) -> ScheduleDefinition:
    return validate_schedule_definition(
        start_time=schedule.start_time,
        end_time=schedule.end_time,
        timezone_id=schedule.timezone,
        rrule=schedule.rrule,
        effective_from=schedule.effective_from,
        effective_to=schedule.effective_to,
    )


def _ensure_no_duplicate(
    db: Session,
    *,
    name: str,
    start_time: str,
    end_time: str,
    timezone_id: str,
    rrule: str,
    effective_from: date,
    effective_to: date | None,
    exclude_id: str | None = None,
) -> None:
    stmt = select(Schedule.id).where(
        Schedule.is_deleted.is_(False),
        Schedule.name == name,
        Schedule.start_time == start_time,
        Schedule.end_time == end_time,
        Schedule.timezone == timezone_id,
        Schedule.rrule == rrule,
        or_(Schedule.effective_to.is_(None), Schedule.effective_to >= effective_from),
    )
    if effective_to is not None:
        stmt = stmt.where(Schedule.effective_from <= effective_to)
    if exclude_id is not None:
        stmt = stmt.where(Schedule.id != exclude_id)

    existing_id = db.execute(stmt.limit(1)).scalar_one_or_none()
    if existing_id is not None:
        raise ConflictError(
            "A schedule with the same definition already covers this period",
            details={"conflicting_schedule_id": existing_id},
        )


def _sorted_exceptions(values) -> list[str]:
    return [item.isoformat() for item in sorted(set(values))]


def _validate_override(schedule: Schedule, payload: TimeOverrideIn) -> tuple[str | None, str | None]:
    if payload.override_date < schedule.effective_from or (
        schedule.effective_to is not None and payload.override_date > schedule.effective_to
    ):
        raise ValidationError(
            "Override date must fall within the schedule's effective period",
            details={"override_date": payload.override_date.isoformat()},
        )
    if payload.is_cancelled:
        start = normalize_time_of_day(payload.start_time, field_name="start_time") if payload.start_time else None
        end = normalize_time_of_day(payload.end_time, field_name="end_time") if payload.end_time else None
        return start, end
    if not payload.start_time or not payload.end_time:
        raise ValidationError(
            "A time override that is not cancelled must provide both start and end times",
            details={"override_date": payload.override_date.isoformat()},
        )
    start = normalize_time_of_day(payload.start_time, field_name="start_time")
    end = normalize_time_of_day(payload.end_time, field_name="end_time")
    if start == end:
        raise ValidationError("Override start and end times must differ", details={"start_time": start})
    return start, end


def _apply_override(schedule: Schedule, payload: TimeOverrideIn) -> ScheduleTimeOverride:
    start, end = _validate_override(schedule, payload)
    record = schedule.override_for(payload.override_date)
    if record is None:
        record = ScheduleTimeOverride(override_date=payload.override_date)
        schedule.time_overrides.append(record)
    record.start_time = start
    record.end_time = end
    record.is_cancelled = payload.is_cancelled
    record.reason = payload.reason
    record.created_by = payload.created_by
    record.created_at = datetime.now(timezone.utc)
    return record


def get_schedule(db: Session, schedule_id: str) -> Schedule:
    schedule = db.get(Schedule, schedule_id)
    if schedule is None or schedule.is_deleted:
        raise NotFoundError("Schedule", schedule_id)
    return schedule


def list_schedules(
    db: Session,
    *,
    active_only: bool = False,
    schedule_type: str | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
) -> list[Schedule]:
    stmt = select(Schedule).where(Schedule.is_deleted.is_(False))
    if active_only:
        stmt = stmt.where(Schedule.is_active.is_(True))
    if schedule_type:
        stmt = stmt.where(Schedule.schedule_type == schedule_type)
    if start_date is not None:
        stmt = stmt.where(or_(Schedule.effective_to.is_(None), Schedule.effective_to >= start_date))
    if end_date is not None:
        stmt = stmt.where(Schedule.effective_from <= end_date)
    return list(db.execute(stmt.order_by(Schedule.effective_from, Schedule.name)).scalars())


def create_schedule(db: Session, payload: ScheduleCreate) -> Schedule:
    definition = validate_schedule_definition(
        start_time=payload.start_time,
        end_time=payload.end_time,
        timezone_id=payload.timezone,
        rrule=payload.rrule,
        effective_from=payload.effective_from,
        effective_to=payload.effective_to,
    )
    start_time = normalize_time_of_day(payload.start_time, field_name="start_time")
    end_time = normalize_time_of_day(payload.end_time, field_name="end_time")
    timezone_id = payload.timezone.strip()
    rrule = definition.rule.describe()
    name = payload.name.strip()

    _ensure_no_duplicate(
        db,
        name=name,
        start_time=start_time,
        end_time=end_time,
        timezone_id=timezone_id,
        rrule=rrule,
        effective_from=payload.effective_from,
        effective_to=payload.effective_to,
    )

    seen_dates: set[date] = set()
    for item in payload.time_overrides:
        if item.override_date in seen_dates:
            raise ValidationError(
                "Only one time override per date is allowed",
                details={"override_date": item.override_date.isoformat()},
            )
        seen_dates.add(item.override_date)

    schedule = Schedule(
        name=name,
        start_time=start_time,
        end_time=end_time,
        timezone=timezone_id,
        rrule=rrule,
        academic_year=payload.academic_year,
        schedule_type=payload.schedule_type,
        effective_from=payload.effective_from,
        effective_to=payload.effective_to,
        exceptions=_sorted_exceptions(payload.exceptions),
        is_active=payload.is_active,
    )
    for item in payload.time_overrides:
        _apply_override(schedule, item)

    db.add(schedule)
    db.commit()
    db.refresh(schedule)
    logger.info("Created schedule %s (%s)", schedule.id, schedule.name)
    return schedule


def update_schedule(db: Session, schedule_id: str, payload: ScheduleUpdate) -> Schedule:
    schedule = get_schedule(db, schedule_id)
    definition = validate_schedule_definition(
        start_time=payload.start_time,
        end_time=payload.end_time,
        timezone_id=payload.timezone,
        rrule=payload.rrule,
        effective_from=payload.effective_from,
        effective_to=payload.effective_to,
    )
    start_time = normalize_time_of_day(payload.start_time, field_name="start_time")
    end_time = normalize_time_of_day(payload.end_time, field_name="end_time")
    timezone_id = payload.timezone.strip()
    rrule = definition.rule.describe()
    name = payload.name.strip()

    _ensure_no_duplicate(
        db,
        name=name,
        start_time=start_time,
        end_time=end_time,
        timezone_id=timezone_id,
        rrule=rrule,
        effective_from=payload.effective_from,
        effective_to=payload.effective_to,
        exclude_id=schedule.id,
    )

    previous = {field: getattr(schedule, field) for field in SCHEDULE_TRACKED_FIELDS}

    schedule.name = name
    schedule.start_time = start_time
    schedule.end_time = end_time
    schedule.timezone = timezone_id
    schedule.rrule = rrule
    schedule.academic_year = payload.academic_year
    schedule.schedule_type = payload.schedule_type
    schedule.effective_from = payload.effective_from
    schedule.effective_to = payload.effective_to
    schedule.is_active = payload.is_active
    if payload.exceptions is not None:
        schedule.exceptions = _sorted_exceptions(payload.exceptions)
    db.flush()

    changed = any(previous[field] != getattr(schedule, field) for field in SCHEDULE_TRACKED_FIELDS)
    if changed:
        notify_schedule_change(db, schedule=schedule, previous=previous)

    db.commit()
    db.refresh(schedule)
    logger.info("Updated schedule %s (definition changed: %s)", schedule.id, changed)
    return schedule


def delete_schedule(db: Session, schedule_id: str) -> Schedule:
    schedule = get_schedule(db, schedule_id)
    schedule.is_deleted = True
    schedule.is_active = False
    result = db.execute(
        update(RouteSchedule)
        .where(RouteSchedule.schedule_id == schedule.id, RouteSchedule.is_deleted.is_(False))
        .values(is_active=False)
    )
    db.commit()
    logger.info("Deleted schedule %s and deactivated %d binding(s)", schedule.id, result.rowcount or 0)
    return schedule


def add_exception(db: Session, schedule_id: str, exception_date: date) -> Schedule:
    schedule = get_schedule(db, schedule_id)
    dates = schedule.exception_dates
    dates.add(exception_date)
    schedule.exceptions = _sorted_exceptions(dates)
    db.commit()
    db.refresh(schedule)
    return schedule


def remove_exception(db: Session, schedule_id: str, exception_date: date) -> Schedule:
    schedule = get_schedule(db, schedule_id)
    dates = schedule.exception_dates
    dates.discard(exception_date)
    schedule.exceptions = _sorted_exceptions(dates)
    db.commit()
    db.refresh(schedule)
    return schedule


def upsert_time_override(db: Session, schedule_id: str, payload: TimeOverrideIn) -> ScheduleTimeOverride:
    schedule = get_schedule(db, schedule_id)
    record = _apply_override(schedule, payload)
    db.commit()
    db.refresh(record)
    logger.info(
        "Stored time override for schedule %s on %s (cancelled: %s)",
        schedule.id,
        record.override_date,
        record.is_cancelled,
    )
    return record


def upsert_time_overrides_batch(
    db: Session, schedule_id: str, payloads: list[TimeOverrideIn]
) -> list[ScheduleTimeOverride]:
    schedule = get_schedule(db, schedule_id)
    # Validate everything first so a bad entry leaves the schedule untouched.
    for payload in payloads:
        _validate_override(schedule, payload)
    records = [_apply_override(schedule, payload) for payload in payloads]
    db.commit()
    for record in records:
        db.refresh(record)
    return records


def get_time_override(db: Session, schedule_id: str, override_date: date) -> ScheduleTimeOverride:
    schedule = get_schedule(db, schedule_id)
    record = schedule.override_for(override_date)
    if record is None:
        raise NotFoundError("ScheduleTimeOverride", f"{schedule_id}/{override_date.isoformat()}")
    return record


def list_time_overrides(db: Session, schedule_id: str) -> list[ScheduleTimeOverride]:
    return list(get_schedule(db, schedule_id).time_overrides)


def remove_time_override(db: Session, schedule_id: str, override_date: date) -> None:
    schedule = get_schedule(db, schedule_id)
    record = schedule.override_for(override_date)
    if record is None:
        raise NotFoundError("ScheduleTimeOverride", f"{schedule_id}/{override_date.isoformat()}")
    schedule.time_overrides.remove(record)
    db.commit()
    logger.info("Removed time override for schedule %s on %s", schedule.id, override_date)


def schedule_dates(db: Session, schedule_id: str, start_date: date, end_date: date) -> list[date]:
    """Dates in ``[start_date, end_date]`` on which the schedule would run.

    Honors the effective window, the recurrence rule and exception dates;
    overrides are not consulted, so cancelled overrides still appear.
    """
    if end_date < start_date:
        raise ValidationError(
            "End date must not be before start date",
            details={"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
        )
    schedule = get_schedule(db, schedule_id)
    definition = definition_for(schedule)
    window_start = max(start_date, schedule.effective_from)
    window_end = end_date if schedule.effective_to is None else min(end_date, schedule.effective_to)
    excluded = schedule.exception_dates
    return [
        item
        for item in iter_matching_dates(definition.rule, window_start, window_end)
        if item not in excluded
    ]


def date_matches_schedule(db: Session, schedule_id: str, on_date: date) -> bool:
    return bool(schedule_dates(db, schedule_id, on_date, on_date))
