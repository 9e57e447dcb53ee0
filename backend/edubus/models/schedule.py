from __future__ import annotations

import uuid
from datetime import date, datetime

from sqlalchemy import Boolean, Date, ForeignKey, JSON, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from edubus.db.base import Base
from edubus.db.types import UTCDateTime


class Schedule(Base):
    __tablename__ = "schedules"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    start_time: Mapped[str] = mapped_column(String(8), nullable=False)
    end_time: Mapped[str] = mapped_column(String(8), nullable=False)
    timezone: Mapped[str] = mapped_column(String(64), nullable=False)
    rrule: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    academic_year: Mapped[str | None] = mapped_column(String(20), nullable=True)
    schedule_type: Mapped[str | None] = mapped_column(String(50), nullable=True, index=True)
    effective_from: Mapped[date] = mapped_column(Date, nullable=False)
    effective_to: Mapped[date | None] = mapped_column(Date, nullable=True)
    exceptions: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), onupdate=func.now())

    time_overrides: Mapped[list["ScheduleTimeOverride"]] = relationship(
        back_populates="schedule",
        cascade="all, delete-orphan",
        order_by="ScheduleTimeOverride.override_date",
    )

    @property
    def exception_dates(self) -> set[date]:
        return {date.fromisoformat(item) for item in self.exceptions or []}

    def override_for(self, on_date: date) -> "ScheduleTimeOverride | None":
        for item in self.time_overrides:
            if item.override_date == on_date:
                return item
        return None


class ScheduleTimeOverride(Base):
    __tablename__ = "schedule_time_overrides"
    __table_args__ = (
        UniqueConstraint("schedule_id", "override_date", name="uq_schedule_time_overrides_date"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    schedule_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("schedules.id", ondelete="CASCADE"), nullable=False, index=True
    )
    override_date: Mapped[date] = mapped_column(Date, nullable=False)
    start_time: Mapped[str | None] = mapped_column(String(8), nullable=True)
    end_time: Mapped[str | None] = mapped_column(String(8), nullable=True)
    is_cancelled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False, default="")
    created_by: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    schedule: Mapped[Schedule] = relationship(back_populates="time_overrides")
