from datetime import date

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from edubus.api.deps import Principal, get_current_principal, get_db, require_roles
from edubus.core.security import Role
from edubus.schemas.schedule import (
    ScheduleCreate,
    ScheduleDateMatch,
    ScheduleDatesOut,
    ScheduleExceptionIn,
    ScheduleOut,
    ScheduleUpdate,
    TimeOverrideBatch,
    TimeOverrideIn,
    TimeOverrideOut,
    TimeOverrideRemoved,
    TimeOverrideResult,
)
from edubus.services import schedule_registry
from edubus.services.regeneration import regenerate_trips_for_date

router = APIRouter()

schedule_editor = require_roles(Role.admin, Role.scheduler)


@router.get("/", response_model=list[ScheduleOut])
def list_schedules(
    active_only: bool = Query(default=False),
    schedule_type: str | None = Query(default=None, max_length=50),
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    current_principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
) -> list[ScheduleOut]:
    return schedule_registry.list_schedules(
        db,
        active_only=active_only,
        schedule_type=schedule_type,
        start_date=start_date,
        end_date=end_date,
    )


@router.post("/", response_model=ScheduleOut, status_code=status.HTTP_201_CREATED)
def create_schedule(
    payload: ScheduleCreate,
    current_principal: Principal = Depends(schedule_editor),
    db: Session = Depends(get_db),
) -> ScheduleOut:
    return schedule_registry.create_schedule(db, payload)


@router.get("/{schedule_id}", response_model=ScheduleOut)
def get_schedule(
    schedule_id: str,
    current_principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
) -> ScheduleOut:
    return schedule_registry.get_schedule(db, schedule_id)


@router.put("/{schedule_id}", response_model=ScheduleOut)
def update_schedule(
    schedule_id: str,
    payload: ScheduleUpdate,
    current_principal: Principal = Depends(schedule_editor),
    db: Session = Depends(get_db),
) -> ScheduleOut:
    return schedule_registry.update_schedule(db, schedule_id, payload)


@router.delete("/{schedule_id}")
def delete_schedule(
    schedule_id: str,
    current_principal: Principal = Depends(require_roles(Role.admin)),
    db: Session = Depends(get_db),
) -> dict:
    schedule_registry.delete_schedule(db, schedule_id)
    return {"success": True}


@router.post("/{schedule_id}/exceptions", response_model=ScheduleOut)
def add_exception(
    schedule_id: str,
    payload: ScheduleExceptionIn,
    current_principal: Principal = Depends(schedule_editor),
    db: Session = Depends(get_db),
) -> ScheduleOut:
    return schedule_registry.add_exception(db, schedule_id, payload.exception_date)


@router.delete("/{schedule_id}/exceptions/{exception_date}", response_model=ScheduleOut)
def remove_exception(
    schedule_id: str,
    exception_date: date,
    current_principal: Principal = Depends(schedule_editor),
    db: Session = Depends(get_db),
) -> ScheduleOut:
    return schedule_registry.remove_exception(db, schedule_id, exception_date)


@router.get("/{schedule_id}/overrides", response_model=list[TimeOverrideOut])
def list_time_overrides(
    schedule_id: str,
    current_principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
) -> list[TimeOverrideOut]:
    return schedule_registry.list_time_overrides(db, schedule_id)


@router.put("/{schedule_id}/overrides", response_model=TimeOverrideResult)
def upsert_time_override(
    schedule_id: str,
    payload: TimeOverrideIn,
    current_principal: Principal = Depends(schedule_editor),
    db: Session = Depends(get_db),
) -> TimeOverrideResult:
    if not payload.created_by:
        payload.created_by = current_principal.id
    record = schedule_registry.upsert_time_override(db, schedule_id, payload)
    override = TimeOverrideOut.model_validate(record)
    trips = regenerate_trips_for_date(db, schedule_id, payload.override_date)
    return TimeOverrideResult(override=override, trips_regenerated=len(trips))


@router.post("/{schedule_id}/overrides/batch", response_model=list[TimeOverrideResult])
def upsert_time_overrides_batch(
    schedule_id: str,
    payload: TimeOverrideBatch,
    current_principal: Principal = Depends(schedule_editor),
    db: Session = Depends(get_db),
) -> list[TimeOverrideResult]:
    for item in payload.overrides:
        if not item.created_by:
            item.created_by = current_principal.id
    records = schedule_registry.upsert_time_overrides_batch(db, schedule_id, payload.overrides)
    overrides = [TimeOverrideOut.model_validate(record) for record in records]
    return [
        TimeOverrideResult(
            override=override,
            trips_regenerated=len(regenerate_trips_for_date(db, schedule_id, override.override_date)),
        )
        for override in overrides
    ]


@router.get("/{schedule_id}/overrides/{override_date}", response_model=TimeOverrideOut)
def get_time_override(
    schedule_id: str,
    override_date: date,
    current_principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
) -> TimeOverrideOut:
    return schedule_registry.get_time_override(db, schedule_id, override_date)


@router.delete("/{schedule_id}/overrides/{override_date}", response_model=TimeOverrideRemoved)
def remove_time_override(
    schedule_id: str,
    override_date: date,
    current_principal: Principal = Depends(schedule_editor),
    db: Session = Depends(get_db),
) -> TimeOverrideRemoved:
    schedule_registry.remove_time_override(db, schedule_id, override_date)
    trips = regenerate_trips_for_date(db, schedule_id, override_date)
    return TimeOverrideRemoved(schedule_id=schedule_id, override_date=override_date, trips_regenerated=len(trips))


@router.get("/{schedule_id}/dates", response_model=ScheduleDatesOut)
def schedule_dates(
    schedule_id: str,
    start_date: date = Query(),
    end_date: date = Query(),
    current_principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
) -> ScheduleDatesOut:
    dates = schedule_registry.schedule_dates(db, schedule_id, start_date, end_date)
    return ScheduleDatesOut(schedule_id=schedule_id, start_date=start_date, end_date=end_date, dates=dates)


@router.get("/{schedule_id}/dates/{on_date}", response_model=ScheduleDateMatch)
def date_matches_schedule(
    schedule_id: str,
    on_date: date,
    current_principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
) -> ScheduleDateMatch:
    matches = schedule_registry.date_matches_schedule(db, schedule_id, on_date)
    return ScheduleDateMatch(schedule_id=schedule_id, on_date=on_date, matches=matches)
