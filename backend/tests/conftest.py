import os
import tempfile

# The app lifespan bootstraps the configured database; point it at a scratch sqlite file.
os.environ["DATABASE_URL"] = (
    f"sqlite+pysqlite:///{os.path.join(tempfile.mkdtemp(prefix='edubus-tests-'), 'bootstrap.db')}"
)

from datetime import date  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from edubus.api.deps import get_db  # noqa: E402
from edubus.core.security import Role, create_access_token  # noqa: E402
from edubus.db.base import Base  # noqa: E402
from edubus.db.session import enable_sqlite_savepoints  # noqa: E402
from edubus.main import app  # noqa: E402
import edubus.models  # noqa: E402,F401
from edubus.models.route import Route, RoutePickupPoint  # noqa: E402
from edubus.schemas.route_schedule import RouteScheduleCreate  # noqa: E402
from edubus.schemas.schedule import ScheduleCreate  # noqa: E402
from edubus.services.route_binder import create_binding  # noqa: E402
from edubus.services.schedule_registry import create_schedule  # noqa: E402


def _memory_engine():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_savepoints(engine)
    Base.metadata.create_all(bind=engine)
    return engine


@pytest.fixture()
def db():
    engine = _memory_engine()
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture()  # test client
def client():
    engine = _memory_engine()  # isolated DB per test
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    def override_get_db():
        session = TestingSessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
    engine.dispose()


def bearer(role: Role, subject: str | None = None) -> dict[str, str]:
    token = create_access_token(subject or f"{role.value}-user", role)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def admin_headers():
    return bearer(Role.admin)


@pytest.fixture()
def scheduler_headers():
    return bearer(Role.scheduler)


@pytest.fixture()
def driver_headers():
    return bearer(Role.driver)


@pytest.fixture()
def make_route(db):
    def _make_route(name: str = "Route A", *, pickup_points: int = 2, is_active: bool = True) -> Route:
        route = Route(name=name, is_active=is_active)
        route.pickup_points = [
            RoutePickupPoint(
                pickup_point_id=f"{name}-pp-{index}",
                sequence_order=index,
                latitude=10.77 + index / 100,
                longitude=106.70 + index / 100,
                address=f"{index} Le Loi, District 1",
            )
            for index in range(1, pickup_points + 1)
        ]
        db.add(route)
        db.commit()
        db.refresh(route)
        return route

    return _make_route


@pytest.fixture()
def make_schedule(db):
    def _make_schedule(**overrides):
        payload = {
            "name": "Morning Pickup",
            "start_time": "07:00",
            "end_time": "08:00",
            "timezone": "Asia/Ho_Chi_Minh",
            "rrule": "FREQ=DAILY",
            "effective_from": date(2024, 1, 1),
            "effective_to": date(2024, 12, 31),
        }
        payload.update(overrides)
        return create_schedule(db, ScheduleCreate(**payload))

    return _make_schedule


@pytest.fixture()
def bind_route(db):
    def _bind_route(route, schedule, **overrides):
        payload = {
            "route_id": route.id,
            "schedule_id": schedule.id,
            "effective_from": schedule.effective_from,
            "effective_to": schedule.effective_to,
            "priority": 0,
        }
        payload.update(overrides)
        return create_binding(db, RouteScheduleCreate(**payload))

    return _bind_route
