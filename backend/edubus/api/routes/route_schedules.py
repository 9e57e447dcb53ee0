from datetime import date

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from edubus.api.deps import Principal, get_current_principal, get_db, require_roles
from edubus.core.exceptions import NotFoundError
from edubus.core.security import Role
from edubus.schemas.route_schedule import RouteScheduleCreate, RouteScheduleOut, RouteScheduleUpdate
from edubus.services import route_binder

router = APIRouter()

binding_editor = require_roles(Role.admin, Role.scheduler)


@router.get("/", response_model=list[RouteScheduleOut])
def list_bindings(
    route_id: str | None = Query(default=None),
    schedule_id: str | None = Query(default=None),
    active_only: bool = Query(default=False),
    current_principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
) -> list[RouteScheduleOut]:
    return route_binder.list_bindings(db, route_id=route_id, schedule_id=schedule_id, active_only=active_only)


@router.get("/resolve", response_model=RouteScheduleOut)
def resolve_binding(
    route_id: str = Query(min_length=1),
    on_date: date = Query(),
    current_principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
) -> RouteScheduleOut:
    binding = route_binder.resolve_binding(db, route_id, on_date)
    if binding is None:
        raise NotFoundError("RouteSchedule", f"{route_id}/{on_date.isoformat()}", reason="has no active binding")
    return binding


@router.post("/", response_model=RouteScheduleOut, status_code=status.HTTP_201_CREATED)
def create_binding(
    payload: RouteScheduleCreate,
    current_principal: Principal = Depends(binding_editor),
    db: Session = Depends(get_db),
) -> RouteScheduleOut:
    return route_binder.create_binding(db, payload)


@router.put("/{binding_id}", response_model=RouteScheduleOut)
def update_binding(
    binding_id: str,
    payload: RouteScheduleUpdate,
    current_principal: Principal = Depends(binding_editor),
    db: Session = Depends(get_db),
) -> RouteScheduleOut:
    return route_binder.update_binding(db, binding_id, payload)


@router.delete("/{binding_id}")
def delete_binding(
    binding_id: str,
    current_principal: Principal = Depends(binding_editor),
    db: Session = Depends(get_db),
) -> dict:
    route_binder.delete_binding(db, binding_id)
    return {"success": True}
