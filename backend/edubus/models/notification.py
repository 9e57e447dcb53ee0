import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import Enum as SAEnum, ForeignKey, JSON, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from edubus.core.security import Role
from edubus.db.base import Base
from edubus.db.types import UTCDateTime


class NotificationType(str, Enum):
    schedule_change = "schedule_change"
    trip = "trip"
    system = "system"


class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    audience_role: Mapped[Role] = mapped_column(SAEnum(Role, name="audience_role"), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    notification_type: Mapped[NotificationType] = mapped_column(
        SAEnum(NotificationType, name="notification_type"),
        nullable=False,
        default=NotificationType.system,
    )
    related_entity_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    related_entity_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    details: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), server_default=func.now())


class NotificationRead(Base):
    """Read receipt for one principal; a role-wide notification is read per reader."""

    __tablename__ = "notification_reads"
    __table_args__ = (UniqueConstraint("notification_id", "principal_id", name="uq_notification_reads_principal"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    notification_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("notifications.id", ondelete="CASCADE"), nullable=False, index=True
    )
    principal_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    read_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
