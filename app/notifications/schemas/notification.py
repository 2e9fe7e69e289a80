from uuid import UUID

from pydantic import BaseModel, Field

from app.core.schemas import UTCDatetime
from app.notifications.models.notification import NotificationType


class NotificationCreate(BaseModel):
    user_id: UUID
    type: NotificationType
    title: str = Field(..., min_length=1, max_length=255)
    message: str | None = None
    related_id: int | None = None


class NotificationResponse(BaseModel):
    notification_id: int
    user_id: UUID
    type: NotificationType
    title: str
    message: str | None = None
    related_id: int | None = None
    is_read: bool = False
    created_at: UTCDatetime


class NotificationPage(BaseModel):
    items: list[NotificationResponse]
    total: int
    unread_count: int
    limit: int
    offset: int
