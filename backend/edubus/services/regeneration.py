from __future__ import annotations

from datetime import date
import logging

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from edubus.core.exceptions import NotFoundError
from edubus.models.schedule import Schedule
from edubus.models.trip import Trip, TripStatus
from edubus.services.trip_generator import generate_trips_for_date

logger = logging.getLogger(__name__)

# Trips already running or finished are history and survive regeneration.
# A trip that started and was later delayed keeps its start_time and is kept too.
FINALIZED_STATUSES = (TripStatus.in_progress, TripStatus.completed)


def _require_schedule(db: Session, schedule_id: str) -> Schedule:
    schedule = db.get(Schedule, schedule_id)
    if schedule is None or schedule.is_deleted:
        raise NotFoundError("Schedule", schedule_id)
    return schedule


def trips_for_schedule_date(db: Session, schedule_id: str, service_date: date) -> list[Trip]:
    stmt = (
        select(Trip)
        .where(
            Trip.schedule_id == schedule_id,
            Trip.service_date == service_date,
            Trip.is_deleted.is_(False),
        )
        .order_by(Trip.planned_start_at, Trip.route_id)
    )
    return list(db.execute(stmt).scalars())


def regenerate_trips_for_date(db: Session, schedule_id: str, service_date: date) -> list[Trip]:
    """Replace the open trips of one schedule date with freshly generated ones."""
    _require_schedule(db, schedule_id)

    result = db.execute(
        update(Trip)
        .where(
            Trip.schedule_id == schedule_id,
            Trip.service_date == service_date,
            Trip.is_deleted.is_(False),
            Trip.status.not_in(FINALIZED_STATUSES),
            Trip.start_time.is_(None),
        )
        .values(is_deleted=True, version=Trip.version + 1)
        .execution_options(synchronize_session="fetch")
    )
    removed = result.rowcount or 0

    # A kept trip still serves its route that day, whatever time the schedule now says.
    kept_routes = {trip.route_id for trip in trips_for_schedule_date(db, schedule_id, service_date)}
    created = generate_trips_for_date(db, schedule_id, service_date, skip_route_ids=kept_routes)
    # Generation may return early without committing; the soft deletes still apply.
    db.commit()
    logger.info(
        "Regenerated schedule %s on %s: %d trip(s) removed, %d created",
        schedule_id,
        service_date,
        removed,
        len(created),
    )
    return created
