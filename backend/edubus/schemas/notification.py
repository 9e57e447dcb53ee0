from datetime import datetime

from pydantic import BaseModel

from edubus.core.security import Role
from edubus.models.notification import NotificationType


class NotificationOut(BaseModel):
    id: str
    audience_role: Role
    title: str
    message: str
    notification_type: NotificationType
    related_entity_type: str | None = None
    related_entity_id: str | None = None
    details: dict
    is_read: bool = False
    read_at: datetime | None = None
    created_at: datetime

    model_config = {"from_attributes": True}
