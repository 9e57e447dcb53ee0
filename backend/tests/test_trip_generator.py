from datetime import date, datetime, timedelta, timezone
import logging

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from edubus.core.exceptions import NotFoundError, ValidationError
from edubus.models.schedule import Schedule
from edubus.models.trip import Trip, TripStatus
from edubus.schemas.schedule import TimeOverrideIn
from edubus.services.trip_generator import generate_trips, generate_upcoming_trips

MONDAY = date(2024, 3, 4)


def _live_trips(db) -> list[Trip]:
    return list(db.execute(select(Trip).where(Trip.is_deleted.is_(False)).order_by(Trip.planned_start_at)).scalars())


def test_generation_is_idempotent(db, make_route, make_schedule, bind_route):
    schedule = make_schedule()
    bind_route(make_route(), schedule)

    first = generate_trips(db, schedule.id, MONDAY, MONDAY + timedelta(days=6))
    second = generate_trips(db, schedule.id, MONDAY, MONDAY + timedelta(days=6))

    assert len(first) == 7
    assert second == []
    assert len(_live_trips(db)) == 7


def test_weekday_filter_limits_service_dates(db, make_route, make_schedule, bind_route):
    schedule = make_schedule(rrule="FREQ=WEEKLY;BYDAY=MO,WE,FR")
    bind_route(make_route(), schedule)

    trips = generate_trips(db, schedule.id, MONDAY, MONDAY + timedelta(days=6))

    assert sorted(trip.service_date.weekday() for trip in trips) == [0, 2, 4]


def test_exception_dates_are_skipped(db, make_route, make_schedule, bind_route):
    schedule = make_schedule(exceptions=[MONDAY + timedelta(days=1)])
    bind_route(make_route(), schedule)

    trips = generate_trips(db, schedule.id, MONDAY, MONDAY + timedelta(days=2))

    assert [trip.service_date for trip in trips] == [MONDAY, MONDAY + timedelta(days=2)]


def test_time_override_supersedes_default_times(db, make_route, make_schedule, bind_route):
    schedule = make_schedule(
        time_overrides=[
            TimeOverrideIn(
                override_date=MONDAY,
                start_time="09:00",
                end_time="10:00",
                reason="Exam day",
                created_by="ops",
            )
        ]
    )
    bind_route(make_route(), schedule)

    trips = generate_trips(db, schedule.id, MONDAY, MONDAY + timedelta(days=1))
    overridden = next(trip for trip in trips if trip.service_date == MONDAY)
    regular = next(trip for trip in trips if trip.service_date != MONDAY)

    assert overridden.planned_start_at == datetime(2024, 3, 4, 2, 0, tzinfo=timezone.utc)
    assert overridden.is_override is True
    assert overridden.override_reason == "Exam day"
    assert overridden.override_created_by == "ops"
    assert overridden.override_info["override_type"] == "TIME_CHANGE"
    assert overridden.override_info["original_start_time"] == "07:00"
    assert overridden.override_info["new_start_time"] == "09:00"
    assert regular.is_override is False
    assert regular.override_info is None


def test_cancelled_override_produces_no_trip(db, make_route, make_schedule, bind_route):
    schedule = make_schedule(time_overrides=[TimeOverrideIn(override_date=MONDAY, is_cancelled=True)])
    bind_route(make_route(), schedule)

    trips = generate_trips(db, schedule.id, MONDAY, MONDAY + timedelta(days=1))

    assert [trip.service_date for trip in trips] == [MONDAY + timedelta(days=1)]


def test_trip_times_are_converted_from_schedule_timezone(db, make_route, make_schedule, bind_route):
    schedule = make_schedule(start_time="07:00", end_time="08:00", timezone="Asia/Ho_Chi_Minh")
    bind_route(make_route(), schedule)

    trip = generate_trips(db, schedule.id, MONDAY, MONDAY + timedelta(days=1))[0]

    assert trip.planned_start_at == datetime(2024, 3, 4, 0, 0, tzinfo=timezone.utc)
    assert trip.planned_start_at.isoformat() == "2024-03-04T00:00:00+00:00"
    assert trip.planned_end_at == datetime(2024, 3, 4, 1, 0, tzinfo=timezone.utc)


def test_overnight_schedule_ends_next_day(db, make_route, make_schedule, bind_route):
    schedule = make_schedule(start_time="22:00", end_time="01:00", timezone="UTC")
    bind_route(make_route(), schedule)

    trip = generate_trips(db, schedule.id, MONDAY, MONDAY + timedelta(days=1))[0]

    assert trip.planned_end_at - trip.planned_start_at == timedelta(hours=3)


def test_priority_resolution_selects_one_binding_per_route(db, make_route, make_schedule, bind_route):
    schedule = make_schedule()
    route = make_route()
    bind_route(route, schedule, priority=1)
    bind_route(route, schedule, priority=2, effective_from=MONDAY, effective_to=MONDAY + timedelta(days=30))

    trips = generate_trips(db, schedule.id, MONDAY, MONDAY + timedelta(days=1))

    assert len(trips) == 2
    assert {trip.route_id for trip in trips} == {route.id}


def test_stops_follow_pickup_order_at_fixed_interval(db, make_route, make_schedule, bind_route):
    schedule = make_schedule()
    bind_route(make_route(pickup_points=3), schedule)

    trip = generate_trips(db, schedule.id, MONDAY, MONDAY + timedelta(days=1))[0]

    assert [stop.sequence_order for stop in trip.stops] == [1, 2, 3]
    offsets = [stop.planned_at - trip.planned_start_at for stop in trip.stops]
    assert offsets == [timedelta(0), timedelta(minutes=5), timedelta(minutes=10)]
    assert trip.stops[0].location_snapshot["address"].startswith("1 ")
    assert trip.stops[0].attendance == []


def test_custom_stop_interval(db, make_route, make_schedule, bind_route):
    schedule = make_schedule()
    bind_route(make_route(pickup_points=2), schedule)

    trip = generate_trips(db, schedule.id, MONDAY, MONDAY + timedelta(days=1), stop_interval=timedelta(minutes=7))[0]

    assert trip.stops[1].planned_at - trip.stops[0].planned_at == timedelta(minutes=7)


def test_route_without_pickup_points_gets_zero_stops(db, make_route, make_schedule, bind_route, caplog):
    schedule = make_schedule()
    bind_route(make_route(pickup_points=0), schedule)

    with caplog.at_level(logging.WARNING, logger="edubus.services.trip_generator"):
        trips = generate_trips(db, schedule.id, MONDAY, MONDAY + timedelta(days=1))

    assert len(trips) == 2
    assert all(trip.stops == [] for trip in trips)
    assert "no pickup points" in caplog.text


def test_inactive_route_is_skipped(db, make_route, make_schedule, bind_route):
    schedule = make_schedule()
    active = make_route("Active")
    closing = make_route("Closing")
    bind_route(active, schedule)
    bind_route(closing, schedule)
    closing.is_active = False
    db.commit()

    trips = generate_trips(db, schedule.id, MONDAY, MONDAY + timedelta(days=1))

    assert {trip.route_id for trip in trips} == {active.id}


def test_snapshot_records_schedule_definition(db, make_route, make_schedule, bind_route):
    schedule = make_schedule(rrule="FREQ=WEEKLY;BYDAY=MO")
    bind_route(make_route(), schedule)

    trip = generate_trips(db, schedule.id, MONDAY, MONDAY + timedelta(days=1))[0]

    assert trip.status is TripStatus.scheduled
    assert trip.schedule_id == schedule.id
    assert trip.schedule_snapshot == {
        "schedule_id": schedule.id,
        "name": "Morning Pickup",
        "start_time": "07:00",
        "end_time": "08:00",
        "rrule": "FREQ=WEEKLY;BYDAY=MO",
        "timezone": "Asia/Ho_Chi_Minh",
    }


def test_window_is_clipped_to_effective_range(db, make_route, make_schedule, bind_route):
    schedule = make_schedule(effective_from=MONDAY, effective_to=MONDAY + timedelta(days=2))
    bind_route(make_route(), schedule)

    trips = generate_trips(db, schedule.id, MONDAY - timedelta(days=10), MONDAY + timedelta(days=10))

    assert [trip.service_date for trip in trips] == [MONDAY + timedelta(days=offset) for offset in range(3)]


def test_inactive_schedule_generates_nothing(db, make_route, make_schedule, bind_route):
    schedule = make_schedule()
    bind_route(make_route(), schedule)
    schedule.is_active = False
    db.commit()

    assert generate_trips(db, schedule.id, MONDAY, MONDAY + timedelta(days=3)) == []


def test_invalid_window_and_missing_schedule(db, make_schedule):
    schedule = make_schedule()
    with pytest.raises(ValidationError):
        generate_trips(db, schedule.id, MONDAY, MONDAY)
    with pytest.raises(NotFoundError):
        generate_trips(db, "missing", MONDAY, MONDAY + timedelta(days=1))


def test_corrupted_stored_schedule_aborts_before_writing(db, make_route, make_schedule, bind_route):
    schedule = make_schedule()
    bind_route(make_route(), schedule)
    db.get(Schedule, schedule.id).timezone = "Invalid/Zone"
    db.commit()

    with pytest.raises(ValidationError):
        generate_trips(db, schedule.id, MONDAY, MONDAY + timedelta(days=3))
    assert _live_trips(db) == []


def test_unique_index_rejects_duplicate_live_trips(db, make_route, make_schedule, bind_route):
    schedule = make_schedule()
    route = make_route()
    bind_route(route, schedule)
    trip = generate_trips(db, schedule.id, MONDAY, MONDAY + timedelta(days=1))[0]

    db.add(
        Trip(
            route_id=route.id,
            schedule_id=schedule.id,
            service_date=trip.service_date,
            planned_start_at=trip.planned_start_at,
            planned_end_at=trip.planned_end_at,
        )
    )
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()


def test_lost_insert_race_is_skipped_silently(db, make_route, make_schedule, bind_route, monkeypatch):
    schedule = make_schedule()
    bind_route(make_route(), schedule)
    generate_trips(db, schedule.id, MONDAY, MONDAY + timedelta(days=1))

    # Pretend the fast-path check missed the rows another worker just committed.
    monkeypatch.setattr("edubus.services.trip_generator._live_trip_exists", lambda *args: False)
    assert generate_trips(db, schedule.id, MONDAY, MONDAY + timedelta(days=1)) == []
    assert len(_live_trips(db)) == 2


def test_upcoming_generation_reports_per_schedule(db, make_route, make_schedule, bind_route):
    route = make_route()
    morning = make_schedule(name="Morning")
    afternoon = make_schedule(name="Afternoon", start_time="15:00", end_time="16:00")
    unbound = make_schedule(name="Unbound")
    bind_route(route, morning)
    bind_route(route, afternoon)

    summary = generate_upcoming_trips(db, 3, today=MONDAY)

    assert summary.start_date == MONDAY
    assert summary.end_date == MONDAY + timedelta(days=3)
    assert summary.schedules_processed == 2
    assert summary.trips_generated == 8
    assert unbound.id not in {item.schedule_id for item in summary.results}
    assert all(item.error is None for item in summary.results)


def test_upcoming_generation_continues_after_a_failing_schedule(db, make_route, make_schedule, bind_route):
    route = make_route()
    broken = make_schedule(name="Broken")
    healthy = make_schedule(name="Healthy", start_time="15:00", end_time="16:00")
    bind_route(route, broken)
    bind_route(route, healthy)
    db.get(Schedule, broken.id).rrule = "FREQ=YEARLY"
    db.commit()

    summary = generate_upcoming_trips(db, 1, today=MONDAY)

    results = {item.schedule_name: item for item in summary.results}
    assert results["Broken"].error is not None
    assert results["Broken"].generated == 0
    assert results["Healthy"].generated == 2
    assert summary.trips_generated == 2
