from datetime import date, datetime, timedelta, timezone

import pytest

from edubus.core.exceptions import ConflictError, NotFoundError, ValidationError
from edubus.models.route_schedule import RouteSchedule
from edubus.schemas.route_schedule import RouteScheduleUpdate
from edubus.services import route_binder


def test_highest_priority_binding_wins(db, make_route, make_schedule, bind_route):
    route = make_route()
    schedule = make_schedule()
    bind_route(route, schedule, priority=1)
    preferred = bind_route(route, schedule, priority=2, effective_from=date(2024, 3, 1), effective_to=date(2024, 3, 31))

    assert route_binder.resolve_binding(db, route.id, date(2024, 3, 4)).id == preferred.id
    assert route_binder.resolve_binding(db, route.id, date(2024, 4, 1)).priority == 1


def test_equal_priority_prefers_most_recent_binding(db, make_route, make_schedule, bind_route):
    route = make_route()
    schedule = make_schedule()
    older = bind_route(route, schedule, priority=1)
    newer = bind_route(route, schedule, priority=1, effective_from=date(2024, 2, 1))
    older.created_at = datetime.now(timezone.utc) - timedelta(days=1)
    db.commit()

    assert route_binder.resolve_binding(db, route.id, date(2024, 3, 4)).id == newer.id


def test_no_binding_covers_date(db, make_route, make_schedule, bind_route):
    route = make_route()
    schedule = make_schedule()
    bind_route(route, schedule, effective_from=date(2024, 3, 1), effective_to=date(2024, 3, 31))
    assert route_binder.resolve_binding(db, route.id, date(2024, 4, 2)) is None


def test_inactive_or_deleted_bindings_are_ignored(db, make_route, make_schedule, bind_route):
    route = make_route()
    schedule = make_schedule()
    fallback = bind_route(route, schedule, priority=1)
    inactive = bind_route(route, schedule, priority=5, is_active=False)
    deleted = bind_route(route, schedule, priority=9)
    route_binder.delete_binding(db, deleted.id)

    assert inactive.is_active is False
    assert route_binder.resolve_binding(db, route.id, date(2024, 3, 4)).id == fallback.id


def test_exact_duplicate_binding_is_a_conflict(make_route, make_schedule, bind_route):
    route = make_route()
    schedule = make_schedule()
    bind_route(route, schedule, priority=1)
    with pytest.raises(ConflictError):
        bind_route(route, schedule, priority=1)


def test_binding_requires_available_route_and_schedule(make_route, make_schedule, bind_route):
    schedule = make_schedule()
    with pytest.raises(NotFoundError):
        bind_route(make_route("Closed", is_active=False), schedule)
    inactive_schedule = make_schedule(name="Paused", is_active=False)
    with pytest.raises(NotFoundError):
        bind_route(make_route("Open"), inactive_schedule)


def test_binding_window_must_be_ordered(make_route, make_schedule, bind_route):
    with pytest.raises(ValidationError):
        bind_route(make_route(), make_schedule(), effective_from=date(2024, 5, 1), effective_to=date(2024, 4, 1))


def test_update_binding_changes_priority(db, make_route, make_schedule, bind_route):
    route = make_route()
    schedule = make_schedule()
    binding = bind_route(route, schedule, priority=1)
    updated = route_binder.update_binding(
        db,
        binding.id,
        RouteScheduleUpdate(
            route_id=route.id,
            schedule_id=schedule.id,
            effective_from=binding.effective_from,
            effective_to=binding.effective_to,
            priority=7,
        ),
    )
    assert updated.priority == 7
    assert [item.id for item in route_binder.list_bindings(db, route_id=route.id)] == [binding.id]


def _binding(route_id: str, priority: int, created_at: datetime, **kwargs) -> RouteSchedule:
    return RouteSchedule(
        id=kwargs.pop("id", f"{route_id}-{priority}"),
        route_id=route_id,
        schedule_id="schedule-1",
        effective_from=kwargs.pop("effective_from", date(2024, 1, 1)),
        effective_to=kwargs.pop("effective_to", None),
        priority=priority,
        is_active=kwargs.pop("is_active", True),
        is_deleted=False,
        created_at=created_at,
    )


def test_batch_resolver_matches_single_resolution_rules():
    now = datetime(2024, 1, 1, tzinfo=timezone.utc)
    resolver = route_binder.BindingResolver(
        [
            _binding("r1", 1, now),
            _binding("r1", 3, now, effective_from=date(2024, 3, 1), effective_to=date(2024, 3, 31)),
            _binding("r1", 9, now, is_active=False),
            _binding("r2", 2, now, id="r2-old"),
            _binding("r2", 2, now + timedelta(hours=1), id="r2-new"),
        ]
    )

    winners = resolver.winners_for(date(2024, 3, 4))
    assert winners["r1"].priority == 3
    assert winners["r2"].id == "r2-new"
    assert resolver.resolve("r1", date(2024, 4, 1)).priority == 1
    assert resolver.resolve("r3", date(2024, 3, 4)) is None
