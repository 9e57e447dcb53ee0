from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from edubus.core.exceptions import NotFoundError
from edubus.models.trip import Trip, TripStatus
from edubus.schemas.schedule import TimeOverrideIn
from edubus.services import schedule_registry
from edubus.services.regeneration import regenerate_trips_for_date, trips_for_schedule_date
from edubus.services.trip_generator import generate_trips
from edubus.services.trip_lifecycle import transition_trip

MONDAY = date(2024, 3, 4)


@pytest.fixture()
def setup(db, make_route, make_schedule, bind_route):
    schedule = make_schedule()
    first = make_route("North")
    second = make_route("South")
    bind_route(first, schedule)
    bind_route(second, schedule)
    generate_trips(db, schedule.id, MONDAY, MONDAY + timedelta(days=1))
    return schedule, first, second


def test_override_change_replaces_open_trips(db, setup):
    schedule, _, _ = setup
    schedule_registry.upsert_time_override(
        db, schedule.id, TimeOverrideIn(override_date=MONDAY, start_time="09:30", end_time="10:30")
    )

    created = regenerate_trips_for_date(db, schedule.id, MONDAY)

    assert len(created) == 2
    live = trips_for_schedule_date(db, schedule.id, MONDAY)
    assert {trip.planned_start_at for trip in live} == {datetime(2024, 3, 4, 2, 30, tzinfo=timezone.utc)}
    deleted = list(db.execute(select(Trip).where(Trip.is_deleted.is_(True))).scalars())
    assert len(deleted) == 2
    # Other dates are untouched.
    assert len(trips_for_schedule_date(db, schedule.id, MONDAY + timedelta(days=1))) == 2


def test_finalized_trips_survive_regeneration(db, setup):
    schedule, first, _ = setup
    running = next(trip for trip in trips_for_schedule_date(db, schedule.id, MONDAY) if trip.route_id == first.id)
    transition_trip(db, running.id, TripStatus.in_progress)

    created = regenerate_trips_for_date(db, schedule.id, MONDAY)

    # The running trip still owns its key, so only the other route is recreated.
    assert len(created) == 1
    assert created[0].route_id != first.id
    live = trips_for_schedule_date(db, schedule.id, MONDAY)
    assert len(live) == 2
    assert running.id in {trip.id for trip in live}


def test_cancelled_override_leaves_no_live_trips(db, setup):
    schedule, _, _ = setup
    schedule_registry.upsert_time_override(db, schedule.id, TimeOverrideIn(override_date=MONDAY, is_cancelled=True))

    assert regenerate_trips_for_date(db, schedule.id, MONDAY) == []
    assert trips_for_schedule_date(db, schedule.id, MONDAY) == []


def test_soft_deletes_persist_when_schedule_is_inactive(db, setup):
    schedule, _, _ = setup
    schedule.is_active = False
    db.commit()

    assert regenerate_trips_for_date(db, schedule.id, MONDAY) == []
    db.rollback()
    assert trips_for_schedule_date(db, schedule.id, MONDAY) == []


def test_regeneration_requires_schedule(db):
    with pytest.raises(NotFoundError):
        regenerate_trips_for_date(db, "missing", MONDAY)


def test_started_then_delayed_trip_survives_regeneration(db, setup):
    schedule, first, second = setup
    running = next(trip for trip in trips_for_schedule_date(db, schedule.id, MONDAY) if trip.route_id == first.id)
    transition_trip(db, running.id, TripStatus.in_progress)
    transition_trip(db, running.id, TripStatus.delayed)

    created = regenerate_trips_for_date(db, schedule.id, MONDAY)

    assert [trip.route_id for trip in created] == [second.id]
    kept = [trip for trip in trips_for_schedule_date(db, schedule.id, MONDAY) if trip.route_id == first.id]
    assert [(trip.id, trip.status) for trip in kept] == [(running.id, TripStatus.delayed)]
    assert kept[0].start_time is not None


def test_kept_trip_blocks_replacement_at_new_override_time(db, setup):
    schedule, first, second = setup
    running = next(trip for trip in trips_for_schedule_date(db, schedule.id, MONDAY) if trip.route_id == first.id)
    transition_trip(db, running.id, TripStatus.in_progress)
    schedule_registry.upsert_time_override(
        db, schedule.id, TimeOverrideIn(override_date=MONDAY, start_time="09:00", end_time="10:00")
    )

    created = regenerate_trips_for_date(db, schedule.id, MONDAY)

    assert [trip.route_id for trip in created] == [second.id]
    live = trips_for_schedule_date(db, schedule.id, MONDAY)
    by_route = {}
    for trip in live:
        by_route.setdefault(trip.route_id, []).append(trip)
    assert [trip.id for trip in by_route[first.id]] == [running.id]
    assert by_route[first.id][0].planned_start_at == datetime(2024, 3, 4, 0, 0, tzinfo=timezone.utc)
    assert [trip.planned_start_at for trip in by_route[second.id]] == [datetime(2024, 3, 4, 2, 0, tzinfo=timezone.utc)]
