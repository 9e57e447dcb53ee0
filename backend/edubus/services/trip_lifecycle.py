from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
import logging

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from edubus.core.exceptions import ConflictError, NotFoundError, ValidationError
from edubus.models.route import Route
from edubus.models.trip import AttendanceState, Trip, TripAttendance, TripStatus

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[TripStatus, frozenset[TripStatus]] = {
    TripStatus.scheduled: frozenset({TripStatus.in_progress, TripStatus.cancelled, TripStatus.delayed}),
    TripStatus.in_progress: frozenset({TripStatus.completed, TripStatus.cancelled, TripStatus.delayed}),
    TripStatus.delayed: frozenset({TripStatus.in_progress, TripStatus.completed, TripStatus.cancelled}),
    TripStatus.completed: frozenset(),
    TripStatus.cancelled: frozenset(),
}

BOARDING_STATES = frozenset({AttendanceState.present, AttendanceState.late})


@dataclass
class CascadeResult:
    route_id: str
    cancelled: int = 0
    failed: int = 0


def _now() -> datetime:
    return datetime.now(timezone.utc)


def allowed_transitions(status: TripStatus) -> list[TripStatus]:
    allowed = ALLOWED_TRANSITIONS.get(status, frozenset())
    return [item for item in TripStatus if item in allowed]


def get_trip(db: Session, trip_id: str) -> Trip:
    trip = db.get(Trip, trip_id)
    if trip is None or trip.is_deleted:
        raise NotFoundError("Trip", trip_id)
    return trip


def list_trips(
    db: Session,
    *,
    route_id: str | None = None,
    service_date: date | None = None,
    status: TripStatus | None = None,
) -> list[Trip]:
    stmt = select(Trip).where(Trip.is_deleted.is_(False))
    if route_id:
        stmt = stmt.where(Trip.route_id == route_id)
    if service_date is not None:
        stmt = stmt.where(Trip.service_date == service_date)
    if status is not None:
        stmt = stmt.where(Trip.status == status)
    return list(db.execute(stmt.order_by(Trip.service_date, Trip.planned_start_at)).scalars())


def _commit_trip_change(db: Session, trip: Trip) -> None:
    try:
        db.commit()
    except StaleDataError as exc:
        db.rollback()
        raise ConflictError(
            "Trip was modified concurrently; reload and retry",
            details={"trip_id": trip.id},
        ) from exc


def transition_trip(db: Session, trip_id: str, new_status: TripStatus, reason: str | None = None) -> Trip:
    trip = get_trip(db, trip_id)
    current = trip.status
    if new_status not in ALLOWED_TRANSITIONS.get(current, frozenset()):
        raise ConflictError(
            f"Cannot change trip status from {current.value} to {new_status.value}",
            details={
                "trip_id": trip.id,
                "current_status": current.value,
                "requested_status": new_status.value,
                "allowed": [item.value for item in allowed_transitions(current)],
            },
        )

    now = _now()
    trip.status = new_status
    trip.status_reason = reason
    if new_status is TripStatus.in_progress and trip.start_time is None:
        trip.start_time = now
    if new_status is TripStatus.completed and trip.end_time is None:
        trip.end_time = now

    _commit_trip_change(db, trip)
    db.refresh(trip)
    logger.info("Trip %s moved from %s to %s", trip.id, current.value, new_status.value)
    return trip


def parse_attendance_state(value: str | AttendanceState) -> AttendanceState:
    if isinstance(value, AttendanceState):
        return value
    token = (value or "").strip()
    for state in AttendanceState:
        if state.value.lower() == token.lower():
            return state
    raise ValidationError(
        f"Unknown attendance state '{value}'",
        details={"state": value, "allowed": [item.value for item in AttendanceState]},
    )


def record_attendance(
    db: Session,
    trip_id: str,
    pickup_point_id: str,
    student_id: str,
    state: str | AttendanceState,
) -> TripAttendance:
    attendance_state = parse_attendance_state(state)
    trip = get_trip(db, trip_id)
    stop = trip.stop_for_pickup_point(pickup_point_id)
    if stop is None:
        raise NotFoundError("TripStop", f"{trip_id}/{pickup_point_id}")

    now = _now()
    record = next((item for item in stop.attendance if item.student_id == student_id), None)
    if record is None:
        record = TripAttendance(student_id=student_id, recorded_at=now)
        stop.attendance.append(record)

    record.state = attendance_state
    record.updated_at = now
    if attendance_state in BOARDING_STATES:
        if record.boarded_at is None:
            record.boarded_at = now
        if stop.arrived_at is None:
            stop.arrived_at = now
    else:
        record.boarded_at = None

    if (
        stop.arrived_at is not None
        and stop.departed_at is None
        and all(item.state is not AttendanceState.pending for item in stop.attendance)
    ):
        stop.departed_at = now

    # Touch the trip so concurrent attendance writes collide on its version.
    trip.updated_at = now
    _commit_trip_change(db, trip)
    db.refresh(record)
    logger.debug("Recorded %s for student %s at stop %s", attendance_state.value, student_id, stop.id)
    return record


def list_attendance(db: Session, trip_id: str) -> list[tuple]:
    """Attendance per stop, in stop order, as ``(stop, records)`` pairs."""
    trip = get_trip(db, trip_id)
    return [(stop, list(stop.attendance)) for stop in trip.stops]


def cascade_cancel_route_trips(db: Session, route_id: str, *, reason: str = "Route deactivated") -> CascadeResult:
    result = CascadeResult(route_id=route_id)
    trip_ids = list(
        db.execute(
            select(Trip.id).where(
                Trip.route_id == route_id,
                Trip.is_deleted.is_(False),
                Trip.status == TripStatus.scheduled,
            )
        ).scalars()
    )

    for trip_id in trip_ids:
        try:
            trip = db.get(Trip, trip_id)
            if trip is None or trip.is_deleted or trip.status is not TripStatus.scheduled:
                continue
            trip.status = TripStatus.cancelled
            trip.status_reason = reason
            db.commit()
            result.cancelled += 1
        except Exception:
            db.rollback()
            result.failed += 1
            logger.exception("Failed to cancel trip %s for route %s", trip_id, route_id)

    logger.info(
        "Cascade cancellation for route %s: %d cancelled, %d failed", route_id, result.cancelled, result.failed
    )
    return result


def deactivate_route(db: Session, route_id: str) -> tuple[Route, CascadeResult]:
    route = db.get(Route, route_id)
    if route is None or route.is_deleted:
        raise NotFoundError("Route", route_id)
    route.is_active = False
    db.commit()
    logger.info("Route %s deactivated", route_id)
    return route, cascade_cancel_route_trips(db, route_id)
