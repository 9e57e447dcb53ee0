from datetime import date, datetime

from pydantic import BaseModel, Field


class RouteScheduleBase(BaseModel):
    route_id: str = Field(min_length=1, max_length=36)
    schedule_id: str = Field(min_length=1, max_length=36)
    effective_from: date
    effective_to: date | None = None
    priority: int = 0
    is_active: bool = True


class RouteScheduleCreate(RouteScheduleBase):
    pass


class RouteScheduleUpdate(RouteScheduleBase):
    pass


class RouteScheduleOut(RouteScheduleBase):
    id: str
    is_deleted: bool
    created_at: datetime
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}
