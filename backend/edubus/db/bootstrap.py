from __future__ import annotations

import logging

from sqlalchemy import inspect
from sqlalchemy.engine import Engine

from edubus.db.base import Base
from edubus.db.session import engine

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS: dict[str, set[str]] = {
    "schedules": {"id", "name", "start_time", "end_time", "timezone", "rrule", "exceptions", "is_deleted"},
    "schedule_time_overrides": {"id", "schedule_id", "override_date", "is_cancelled"},
    "route_schedules": {"id", "route_id", "schedule_id", "priority", "effective_from", "effective_to"},
    "trips": {"id", "route_id", "schedule_id", "service_date", "planned_start_at", "status", "version"},
    "trip_stops": {"id", "trip_id", "pickup_point_id", "planned_at", "location_snapshot"},
    "trip_attendance": {"id", "stop_id", "student_id", "state"},
}


def _assert_required_columns(bind: Engine) -> None:
    with bind.connect() as connection:
        inspector = inspect(connection)
        table_names = set(inspector.get_table_names())
        missing_tables = sorted(set(REQUIRED_COLUMNS) - table_names)
        if missing_tables:
            raise RuntimeError(f"Missing required tables: {', '.join(missing_tables)}")
        for table_name, columns in REQUIRED_COLUMNS.items():
            existing = {item["name"] for item in inspector.get_columns(table_name)}
            missing = sorted(columns - existing)
            if missing:
                raise RuntimeError(f"Table {table_name} is missing columns: {', '.join(missing)}")


def ensure_runtime_schema_compatibility(bind: Engine | None = None) -> None:
    target = bind if bind is not None else engine
    try:
        import edubus.models  # noqa: F401

        Base.metadata.create_all(bind=target)
        _assert_required_columns(target)
    except Exception as exc:
        logger.exception("Runtime schema compatibility bootstrap failed")
        raise RuntimeError("Runtime schema compatibility bootstrap failed") from exc
