"""Expand a schedule into dated, timezone-correct trips for its bound routes.

Generation is idempotent: the live-trip key (route, service date, planned
start) is checked before insert and enforced by a partial unique index, so a
concurrent run that loses the race simply skips the row.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
import logging

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from edubus.core.config import get_settings
from edubus.core.exceptions import AppError, NotFoundError, ValidationError
from edubus.models.route import Route
from edubus.models.route_schedule import RouteSchedule
from edubus.models.schedule import Schedule, ScheduleTimeOverride
from edubus.models.trip import Trip, TripStatus, TripStop
from edubus.services.recurrence import iter_dates
from edubus.services.route_binder import BindingResolver, active_bindings_for_schedule
from edubus.services.schedule_registry import ScheduleDefinition, definition_for
from edubus.services.timeofday import occurrence_window, parse_time_of_day

logger = logging.getLogger(__name__)

OVERRIDE_TYPE_TIME_CHANGE = "TIME_CHANGE"


@dataclass
class ScheduleGenerationResult:
    schedule_id: str
    schedule_name: str
    generated: int = 0
    error: str | None = None


@dataclass
class UpcomingGenerationSummary:
    start_date: date
    end_date: date
    schedules_processed: int = 0
    trips_generated: int = 0
    results: list[ScheduleGenerationResult] = field(default_factory=list)


def _schedule_snapshot(schedule: Schedule) -> dict:
    return {
        "schedule_id": schedule.id,
        "name": schedule.name,
        "start_time": schedule.start_time,
        "end_time": schedule.end_time,
        "rrule": schedule.rrule,
        "timezone": schedule.timezone,
    }


def _override_info(schedule: Schedule, override: ScheduleTimeOverride) -> dict:
    return {
        "override_type": OVERRIDE_TYPE_TIME_CHANGE,
        "original_start_time": schedule.start_time,
        "original_end_time": schedule.end_time,
        "new_start_time": override.start_time,
        "new_end_time": override.end_time,
        "reason": override.reason,
        "created_by": override.created_by,
        "created_at": override.created_at.isoformat() if override.created_at else None,
    }


def _live_trip_exists(db: Session, route_id: str, service_date: date, planned_start_at: datetime) -> bool:
    stmt = select(Trip.id).where(
        Trip.route_id == route_id,
        Trip.service_date == service_date,
        Trip.planned_start_at == planned_start_at,
        Trip.is_deleted.is_(False),
    )
    return db.execute(stmt.limit(1)).scalar_one_or_none() is not None


def _build_stops(route: Route, planned_start_at: datetime, stop_interval: timedelta) -> list[TripStop]:
    stops: list[TripStop] = []
    for index, point in enumerate(route.pickup_points):
        stops.append(
            TripStop(
                sequence_order=point.sequence_order,
                pickup_point_id=point.pickup_point_id,
                planned_at=planned_start_at + index * stop_interval,
                location_snapshot={
                    "latitude": point.latitude,
                    "longitude": point.longitude,
                    "address": point.address,
                },
            )
        )
    return stops


def _insert_trip(db: Session, trip: Trip) -> bool:
    try:
        with db.begin_nested():
            db.add(trip)
            db.flush()
    except IntegrityError:
        logger.debug(
            "Trip for route %s on %s at %s already exists; skipping",
            trip.route_id,
            trip.service_date,
            trip.planned_start_at,
        )
        return False
    return True


def _load_routes(db: Session, route_ids: list[str]) -> dict[str, Route]:
    if not route_ids:
        return {}
    routes = db.execute(select(Route).where(Route.id.in_(route_ids))).scalars()
    return {route.id: route for route in routes}


def _generate_for_window(
    db: Session,
    schedule: Schedule,
    definition: ScheduleDefinition,
    start_date: date,
    end_date: date,
    stop_interval: timedelta,
    skip_route_ids: frozenset[str] = frozenset(),
) -> list[Trip]:
    if not schedule.is_active:
        logger.debug("Schedule %s is inactive; nothing to generate", schedule.id)
        return []

    window_start = max(start_date, schedule.effective_from)
    window_end = end_date if schedule.effective_to is None else min(end_date, schedule.effective_to)
    if window_start > window_end:
        return []

    resolver = BindingResolver(active_bindings_for_schedule(db, schedule.id))
    routes = _load_routes(db, resolver.route_ids)
    excluded = schedule.exception_dates
    created: list[Trip] = []
    reported_unavailable: set[str] = set()

    for service_date in iter_dates(window_start, window_end):
        if service_date in excluded:
            logger.debug("Schedule %s skips exception date %s", schedule.id, service_date)
            continue
        if not definition.rule.matches(service_date):
            continue

        winners = resolver.winners_for(service_date)
        if not winners:
            continue

        override = schedule.override_for(service_date)
        if override is not None and override.is_cancelled:
            logger.debug("Schedule %s cancelled on %s by override", schedule.id, service_date)
            continue

        start, end = definition.start, definition.end
        if override is not None:
            start = parse_time_of_day(override.start_time, field_name="start_time")
            end = parse_time_of_day(override.end_time, field_name="end_time")
        planned_start_at, planned_end_at = occurrence_window(service_date, start, end, definition.tz)

        for route_id, binding in winners.items():
            if route_id in skip_route_ids:
                continue
            route = routes.get(route_id)
            if route is None or not route.is_available:
                if route_id not in reported_unavailable:
                    logger.warning(
                        "Route %s bound to schedule %s is missing or inactive; skipping", route_id, schedule.id
                    )
                    reported_unavailable.add(route_id)
                continue
            if _live_trip_exists(db, route_id, service_date, planned_start_at):
                continue

            trip = Trip(
                route_id=route_id,
                schedule_id=schedule.id,
                service_date=service_date,
                planned_start_at=planned_start_at,
                planned_end_at=planned_end_at,
                status=TripStatus.scheduled,
                schedule_snapshot=_schedule_snapshot(schedule),
            )
            if override is not None:
                trip.is_override = True
                trip.override_reason = override.reason
                trip.override_created_by = override.created_by
                trip.override_created_at = override.created_at
                trip.override_info = _override_info(schedule, override)

            trip.stops = _build_stops(route, planned_start_at, stop_interval)
            if not trip.stops:
                logger.warning("Route %s has no pickup points; trip on %s has no stops", route_id, service_date)

            if _insert_trip(db, trip):
                created.append(trip)
                logger.debug(
                    "Generated trip %s for route %s (binding %s) on %s",
                    trip.id,
                    route_id,
                    binding.id,
                    service_date,
                )

    db.commit()
    logger.info(
        "Generated %d trip(s) for schedule %s between %s and %s",
        len(created),
        schedule.id,
        window_start,
        window_end,
    )
    return created


def _load_schedule(db: Session, schedule_id: str) -> Schedule:
    schedule = db.get(Schedule, schedule_id)
    if schedule is None or schedule.is_deleted:
        raise NotFoundError("Schedule", schedule_id)
    return schedule


def _stop_interval(stop_interval: timedelta | None) -> timedelta:
    if stop_interval is not None:
        return stop_interval
    return timedelta(minutes=get_settings().trip_stop_interval_minutes)


def generate_trips(
    db: Session,
    schedule_id: str,
    start_date: date,
    end_date: date,
    *,
    stop_interval: timedelta | None = None,
) -> list[Trip]:
    """Create trips for ``schedule_id`` between two dates, inclusive.

    Returns only the trips created by this call; occurrences that already
    exist are skipped silently.
    """
    if end_date <= start_date:
        raise ValidationError(
            "End date must be after start date",
            details={"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
        )
    max_days = get_settings().max_generation_window_days
    if (end_date - start_date).days > max_days:
        raise ValidationError(
            f"Generation window cannot exceed {max_days} days",
            details={"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
        )

    schedule = _load_schedule(db, schedule_id)
    definition = definition_for(schedule)
    return _generate_for_window(db, schedule, definition, start_date, end_date, _stop_interval(stop_interval))


def generate_trips_for_date(
    db: Session,
    schedule_id: str,
    service_date: date,
    *,
    stop_interval: timedelta | None = None,
    skip_route_ids: set[str] | frozenset[str] = frozenset(),
) -> list[Trip]:
    """Generate one service date, leaving out routes listed in ``skip_route_ids``."""
    schedule = _load_schedule(db, schedule_id)
    definition = definition_for(schedule)
    return _generate_for_window(
        db,
        schedule,
        definition,
        service_date,
        service_date,
        _stop_interval(stop_interval),
        frozenset(skip_route_ids),
    )


def generate_upcoming_trips(
    db: Session,
    days_ahead: int | None = None,
    *,
    today: date | None = None,
) -> UpcomingGenerationSummary:
    days = days_ahead if days_ahead is not None else get_settings().auto_generation_days_ahead
    if days < 1:
        raise ValidationError("days_ahead must be at least 1", details={"days_ahead": days})
    start_date = today or datetime.now(timezone.utc).date()
    end_date = start_date + timedelta(days=days)
    summary = UpcomingGenerationSummary(start_date=start_date, end_date=end_date)

    bound = (
        select(RouteSchedule.schedule_id)
        .where(RouteSchedule.is_active.is_(True), RouteSchedule.is_deleted.is_(False))
        .distinct()
    )
    stmt = (
        select(Schedule)
        .where(
            Schedule.is_active.is_(True),
            Schedule.is_deleted.is_(False),
            Schedule.effective_from <= end_date,
            or_(Schedule.effective_to.is_(None), Schedule.effective_to >= start_date),
            Schedule.id.in_(bound),
        )
        .order_by(Schedule.name)
    )
    schedules = list(db.execute(stmt).scalars())

    for schedule in schedules:
        result = ScheduleGenerationResult(schedule_id=schedule.id, schedule_name=schedule.name)
        try:
            result.generated = len(generate_trips(db, schedule.id, start_date, end_date))
        except AppError as exc:
            db.rollback()
            logger.exception("Upcoming trip generation failed for schedule %s", schedule.id)
            result.error = exc.message
        except Exception as exc:
            db.rollback()
            logger.exception("Upcoming trip generation failed for schedule %s", schedule.id)
            result.error = str(exc)
        summary.results.append(result)
        summary.schedules_processed += 1
        summary.trips_generated += result.generated

    logger.info(
        "Upcoming generation processed %d schedule(s) and created %d trip(s) for %s..%s",
        summary.schedules_processed,
        summary.trips_generated,
        start_date,
        end_date,
    )
    return summary
