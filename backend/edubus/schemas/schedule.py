from datetime import date, datetime

from pydantic import BaseModel, Field


class TimeOverrideIn(BaseModel):
    override_date: date
    start_time: str | None = Field(default=None, max_length=8)
    end_time: str | None = Field(default=None, max_length=8)
    is_cancelled: bool = False
    reason: str = Field(default="", max_length=1000)
    created_by: str = Field(default="", max_length=200)


class TimeOverrideBatch(BaseModel):
    overrides: list[TimeOverrideIn] = Field(min_length=1)


class TimeOverrideOut(BaseModel):
    id: str
    schedule_id: str
    override_date: date
    start_time: str | None = None
    end_time: str | None = None
    is_cancelled: bool
    reason: str
    created_by: str
    created_at: datetime

    model_config = {"from_attributes": True}


class ScheduleBase(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    start_time: str = Field(max_length=8)
    end_time: str = Field(max_length=8)
    timezone: str = Field(min_length=1, max_length=64)
    rrule: str = Field(default="", max_length=255)
    academic_year: str | None = Field(default=None, max_length=20)
    schedule_type: str | None = Field(default=None, max_length=50)
    effective_from: date
    effective_to: date | None = None
    is_active: bool = True


class ScheduleCreate(ScheduleBase):
    exceptions: list[date] = Field(default_factory=list)
    time_overrides: list[TimeOverrideIn] = Field(default_factory=list)


class ScheduleUpdate(ScheduleBase):
    # None keeps the stored exception list.
    exceptions: list[date] | None = None


class ScheduleOut(ScheduleBase):
    id: str
    exceptions: list[date]
    time_overrides: list[TimeOverrideOut]
    is_deleted: bool
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


class ScheduleExceptionIn(BaseModel):
    exception_date: date


class ScheduleDatesOut(BaseModel):
    schedule_id: str
    start_date: date
    end_date: date
    dates: list[date]


class TimeOverrideResult(BaseModel):
    override: TimeOverrideOut
    trips_regenerated: int


class TimeOverrideRemoved(BaseModel):
    schedule_id: str
    override_date: date
    trips_regenerated: int


class ScheduleDateMatch(BaseModel):
    schedule_id: str
    on_date: date
    matches: bool
