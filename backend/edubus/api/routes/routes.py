from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from edubus.api.deps import Principal, get_current_principal, get_db, require_roles
from edubus.core.exceptions import NotFoundError
from edubus.core.security import Role
from edubus.models.route import Route, RoutePickupPoint
from edubus.schemas.route import RouteCreate, RouteDeactivateOut, RouteOut
from edubus.services.route_binder import get_route as load_route
from edubus.services.trip_lifecycle import deactivate_route as deactivate

router = APIRouter()


@router.post("/", response_model=RouteOut, status_code=status.HTTP_201_CREATED)
def create_route(
    payload: RouteCreate,
    current_principal: Principal = Depends(require_roles(Role.admin)),
    db: Session = Depends(get_db),
) -> RouteOut:
    route = Route(name=payload.name.strip(), is_active=payload.is_active)
    route.pickup_points = [RoutePickupPoint(**item.model_dump()) for item in payload.pickup_points]
    db.add(route)
    db.commit()
    db.refresh(route)
    return route


@router.get("/{route_id}", response_model=RouteOut)
def get_route(
    route_id: str,
    current_principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
) -> RouteOut:
    route = load_route(db, route_id)
    if route is None or route.is_deleted:
        raise NotFoundError("Route", route_id)
    return route


@router.post("/{route_id}/deactivate", response_model=RouteDeactivateOut)
def deactivate_route(
    route_id: str,
    current_principal: Principal = Depends(require_roles(Role.admin)),
    db: Session = Depends(get_db),
) -> RouteDeactivateOut:
    route, result = deactivate(db, route_id)
    db.refresh(route)
    return RouteDeactivateOut(
        route=RouteOut.model_validate(route),
        cancelled=result.cancelled,
        failed=result.failed,
    )
