from datetime import date, datetime

from pydantic import BaseModel, Field

from edubus.models.trip import AttendanceState, TripStatus


class AttendanceOut(BaseModel):
    id: str
    student_id: str
    state: AttendanceState
    boarded_at: datetime | None = None
    alighted_at: datetime | None = None
    recorded_at: datetime
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


class TripStopOut(BaseModel):
    id: str
    sequence_order: int
    pickup_point_id: str
    planned_at: datetime
    arrived_at: datetime | None = None
    departed_at: datetime | None = None
    location_snapshot: dict
    attendance: list[AttendanceOut] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class TripOut(BaseModel):
    id: str
    route_id: str
    schedule_id: str | None = None
    service_date: date
    planned_start_at: datetime
    planned_end_at: datetime
    start_time: datetime | None = None
    end_time: datetime | None = None
    status: TripStatus
    status_reason: str | None = None
    schedule_snapshot: dict
    is_override: bool
    override_reason: str
    override_created_by: str
    override_created_at: datetime | None = None
    override_info: dict | None = None
    version: int
    stops: list[TripStopOut] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class TripGenerateRequest(BaseModel):
    schedule_id: str = Field(min_length=1, max_length=36)
    start_date: date
    end_date: date


class TripGenerateUpcomingRequest(BaseModel):
    days_ahead: int | None = Field(default=None, ge=1, le=366)


class TripRegenerateRequest(BaseModel):
    schedule_id: str = Field(min_length=1, max_length=36)
    service_date: date


class ScheduleGenerationResult(BaseModel):
    schedule_id: str
    schedule_name: str
    generated: int
    error: str | None = None


class UpcomingGenerationOut(BaseModel):
    start_date: date
    end_date: date
    schedules_processed: int
    trips_generated: int
    results: list[ScheduleGenerationResult]


class TripStatusUpdate(BaseModel):
    status: TripStatus
    reason: str | None = Field(default=None, max_length=1000)


class AllowedTransitionsOut(BaseModel):
    trip_id: str
    status: TripStatus
    allowed: list[TripStatus]


class AttendanceUpdate(BaseModel):
    pickup_point_id: str = Field(min_length=1, max_length=36)
    student_id: str = Field(min_length=1, max_length=36)
    # Plain string so unknown tokens reach the service and fail with its message.
    state: str = Field(min_length=1, max_length=20)


class StopAttendanceOut(BaseModel):
    stop_id: str
    pickup_point_id: str
    sequence_order: int
    arrived_at: datetime | None = None
    departed_at: datetime | None = None
    attendance: list[AttendanceOut]
