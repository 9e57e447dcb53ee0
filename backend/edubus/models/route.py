import uuid
from datetime import datetime

from sqlalchemy import Boolean, Float, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from edubus.db.base import Base
from edubus.db.types import UTCDateTime


class Route(Base):
    __tablename__ = "routes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), onupdate=func.now())

    pickup_points: Mapped[list["RoutePickupPoint"]] = relationship(
        back_populates="route",
        cascade="all, delete-orphan",
        order_by="RoutePickupPoint.sequence_order",
    )

    @property
    def is_available(self) -> bool:
        return self.is_active and not self.is_deleted


class RoutePickupPoint(Base):
    __tablename__ = "route_pickup_points"
    __table_args__ = (
        UniqueConstraint("route_id", "sequence_order", name="uq_route_pickup_points_sequence"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    route_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("routes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    pickup_point_id: Mapped[str] = mapped_column(String(36), nullable=False)
    sequence_order: Mapped[int] = mapped_column(Integer, nullable=False)
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    address: Mapped[str] = mapped_column(String(500), nullable=False, default="")

    route: Mapped[Route] = relationship(back_populates="pickup_points")
