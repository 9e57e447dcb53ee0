from dataclasses import asdict
from datetime import date

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from edubus.api.deps import Principal, get_current_principal, get_db, require_roles
from edubus.core.security import Role
from edubus.models.trip import TripStatus
from edubus.schemas.trip import (
    AllowedTransitionsOut,
    AttendanceOut,
    AttendanceUpdate,
    StopAttendanceOut,
    TripGenerateRequest,
    TripGenerateUpcomingRequest,
    TripOut,
    TripRegenerateRequest,
    TripStatusUpdate,
    UpcomingGenerationOut,
)
from edubus.services import trip_lifecycle
from edubus.services.regeneration import regenerate_trips_for_date, trips_for_schedule_date
from edubus.services.trip_generator import generate_trips, generate_upcoming_trips

router = APIRouter()

trip_planner = require_roles(Role.admin, Role.scheduler)
trip_operator = require_roles(Role.admin, Role.scheduler, Role.driver, Role.supervisor)
attendance_recorder = require_roles(Role.admin, Role.driver, Role.supervisor)


@router.get("/", response_model=list[TripOut])
def list_trips(
    route_id: str | None = Query(default=None),
    service_date: date | None = Query(default=None),
    trip_status: TripStatus | None = Query(default=None, alias="status"),
    current_principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
) -> list[TripOut]:
    return trip_lifecycle.list_trips(db, route_id=route_id, service_date=service_date, status=trip_status)


@router.get("/by-schedule", response_model=list[TripOut])
def list_trips_for_schedule_date(
    schedule_id: str = Query(min_length=1),
    service_date: date = Query(),
    current_principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
) -> list[TripOut]:
    return trips_for_schedule_date(db, schedule_id, service_date)


@router.post("/generate", response_model=list[TripOut], status_code=status.HTTP_201_CREATED)
def generate(
    payload: TripGenerateRequest,
    current_principal: Principal = Depends(trip_planner),
    db: Session = Depends(get_db),
) -> list[TripOut]:
    return generate_trips(db, payload.schedule_id, payload.start_date, payload.end_date)


@router.post("/generate-upcoming", response_model=UpcomingGenerationOut)
def generate_upcoming(
    payload: TripGenerateUpcomingRequest,
    current_principal: Principal = Depends(trip_planner),
    db: Session = Depends(get_db),
) -> UpcomingGenerationOut:
    summary = generate_upcoming_trips(db, payload.days_ahead)
    return UpcomingGenerationOut(**asdict(summary))


@router.post("/regenerate", response_model=list[TripOut])
def regenerate(
    payload: TripRegenerateRequest,
    current_principal: Principal = Depends(trip_planner),
    db: Session = Depends(get_db),
) -> list[TripOut]:
    return regenerate_trips_for_date(db, payload.schedule_id, payload.service_date)


@router.get("/{trip_id}", response_model=TripOut)
def get_trip(
    trip_id: str,
    current_principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
) -> TripOut:
    return trip_lifecycle.get_trip(db, trip_id)


@router.get("/{trip_id}/allowed-transitions", response_model=AllowedTransitionsOut)
def allowed_transitions(
    trip_id: str,
    current_principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
) -> AllowedTransitionsOut:
    trip = trip_lifecycle.get_trip(db, trip_id)
    return AllowedTransitionsOut(
        trip_id=trip.id,
        status=trip.status,
        allowed=trip_lifecycle.allowed_transitions(trip.status),
    )


@router.patch("/{trip_id}/status", response_model=TripOut)
def update_status(
    trip_id: str,
    payload: TripStatusUpdate,
    current_principal: Principal = Depends(trip_operator),
    db: Session = Depends(get_db),
) -> TripOut:
    return trip_lifecycle.transition_trip(db, trip_id, payload.status, payload.reason)


@router.get("/{trip_id}/attendance", response_model=list[StopAttendanceOut])
def list_attendance(
    trip_id: str,
    current_principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
) -> list[StopAttendanceOut]:
    return [
        StopAttendanceOut(
            stop_id=stop.id,
            pickup_point_id=stop.pickup_point_id,
            sequence_order=stop.sequence_order,
            arrived_at=stop.arrived_at,
            departed_at=stop.departed_at,
            attendance=[AttendanceOut.model_validate(item) for item in records],
        )
        for stop, records in trip_lifecycle.list_attendance(db, trip_id)
    ]


@router.put("/{trip_id}/attendance", response_model=AttendanceOut)
def record_attendance(
    trip_id: str,
    payload: AttendanceUpdate,
    current_principal: Principal = Depends(attendance_recorder),
    db: Session = Depends(get_db),
) -> AttendanceOut:
    return trip_lifecycle.record_attendance(
        db, trip_id, payload.pickup_point_id, payload.student_id, payload.state
    )
