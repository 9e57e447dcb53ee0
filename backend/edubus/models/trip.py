from __future__ import annotations

import uuid
from datetime import date, datetime
from enum import Enum

from sqlalchemy import (
    Boolean,
    Date,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from edubus.db.base import Base
from edubus.db.types import UTCDateTime


class TripStatus(str, Enum):
    scheduled = "Scheduled"
    in_progress = "InProgress"
    completed = "Completed"
    cancelled = "Cancelled"
    delayed = "Delayed"


class AttendanceState(str, Enum):
    present = "Present"
    absent = "Absent"
    late = "Late"
    excused = "Excused"
    pending = "Pending"


class Trip(Base):
    __tablename__ = "trips"
    __table_args__ = (
        # Idempotency key for generation; only live rows participate.
        Index(
            "uq_trips_route_service_date_planned_start",
            "route_id",
            "service_date",
            "planned_start_at",
            unique=True,
            sqlite_where=text("is_deleted = 0"),
            postgresql_where=text("is_deleted = false"),
        ),
        Index("ix_trips_schedule_service_date", "schedule_id", "service_date"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    route_id: Mapped[str] = mapped_column(String(36), ForeignKey("routes.id"), nullable=False, index=True)
    schedule_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    service_date: Mapped[date] = mapped_column(Date, nullable=False)
    planned_start_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    planned_end_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    start_time: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    end_time: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    status: Mapped[TripStatus] = mapped_column(
        SAEnum(TripStatus, name="trip_status", values_callable=lambda items: [item.value for item in items]),
        nullable=False,
        default=TripStatus.scheduled,
        index=True,
    )
    status_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    schedule_snapshot: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    is_override: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    override_reason: Mapped[str] = mapped_column(Text, nullable=False, default="")
    override_created_by: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    override_created_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    override_info: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), onupdate=func.now())

    stops: Mapped[list["TripStop"]] = relationship(
        back_populates="trip",
        cascade="all, delete-orphan",
        order_by="TripStop.sequence_order",
    )

    __mapper_args__ = {"version_id_col": version}

    def stop_for_pickup_point(self, pickup_point_id: str) -> "TripStop | None":
        for stop in self.stops:
            if stop.pickup_point_id == pickup_point_id:
                return stop
        return None


class TripStop(Base):
    __tablename__ = "trip_stops"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    trip_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("trips.id", ondelete="CASCADE"), nullable=False, index=True
    )
    sequence_order: Mapped[int] = mapped_column(Integer, nullable=False)
    pickup_point_id: Mapped[str] = mapped_column(String(36), nullable=False)
    planned_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    arrived_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    departed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    location_snapshot: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    trip: Mapped[Trip] = relationship(back_populates="stops")
    attendance: Mapped[list["TripAttendance"]] = relationship(
        back_populates="stop",
        cascade="all, delete-orphan",
        order_by="TripAttendance.recorded_at",
    )


class TripAttendance(Base):
    __tablename__ = "trip_attendance"
    __table_args__ = (UniqueConstraint("stop_id", "student_id", name="uq_trip_attendance_student"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    stop_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("trip_stops.id", ondelete="CASCADE"), nullable=False, index=True
    )
    student_id: Mapped[str] = mapped_column(String(36), nullable=False)
    state: Mapped[AttendanceState] = mapped_column(
        SAEnum(AttendanceState, name="attendance_state", values_callable=lambda items: [item.value for item in items]),
        nullable=False,
        default=AttendanceState.pending,
    )
    boarded_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    alighted_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    recorded_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    updated_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), onupdate=func.now())

    stop: Mapped[TripStop] = relationship(back_populates="attendance")
