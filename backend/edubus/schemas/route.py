from datetime import datetime

from pydantic import BaseModel, Field


class PickupPointIn(BaseModel):
    pickup_point_id: str = Field(min_length=1, max_length=36)
    sequence_order: int = Field(ge=0)
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    address: str = Field(default="", max_length=500)


class PickupPointOut(PickupPointIn):
    id: str

    model_config = {"from_attributes": True}


class RouteCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    is_active: bool = True
    pickup_points: list[PickupPointIn] = Field(default_factory=list)


class RouteOut(BaseModel):
    id: str
    name: str
    is_active: bool
    is_deleted: bool
    pickup_points: list[PickupPointOut]
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class RouteDeactivateOut(BaseModel):
    route: RouteOut
    cancelled: int
    failed: int
