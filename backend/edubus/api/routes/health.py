from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import inspect, text

from edubus.db.bootstrap import REQUIRED_COLUMNS
from edubus.db.session import engine

router = APIRouter()

TRIP_KEY_INDEX = "uq_trips_route_service_date_planned_start"


@router.get("/health")
def health() -> dict:
    return {"status": "ok"}


@router.get("/health/live")
def health_live() -> dict:
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}


@router.get("/health/ready")
def health_ready() -> JSONResponse:
    """Report database reachability, schema drift and the trip idempotency index."""
    db_ok = True
    missing_tables: list[str] = []
    missing_columns: dict[str, list[str]] = {}
    trip_key_index = False
    db_error: str | None = None

    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
            inspector = inspect(connection)
            table_names = set(inspector.get_table_names())
            for table_name, columns in REQUIRED_COLUMNS.items():
                if table_name not in table_names:
                    missing_tables.append(table_name)
                    continue
                existing = {item["name"] for item in inspector.get_columns(table_name)}
                missing = sorted(columns - existing)
                if missing:
                    missing_columns[table_name] = missing
            if "trips" in table_names:
                trip_key_index = any(
                    item["name"] == TRIP_KEY_INDEX and item.get("unique") for item in inspector.get_indexes("trips")
                )
    except Exception as exc:  # pragma: no cover - environment dependent
        db_ok = False
        db_error = str(exc)

    schema_ok = not missing_tables and not missing_columns and trip_key_index
    ready = db_ok and schema_ok

    return JSONResponse(
        status_code=200 if ready else 503,
        content={
            "status": "ok" if ready else "degraded",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "database": {
                "ok": db_ok,
                "schema_ok": schema_ok,
                "trip_key_index": trip_key_index,
                "missing_tables": missing_tables,
                "missing_columns": missing_columns,
                "error": db_error,
            },
        },
    )
