import logging
from uuid import UUID

from sqlalchemy.orm import Session

from app.core.config import settings
from app.notifications.models.notification import Notification, NotificationType
from app.notifications.repositories.notification_repository import NotificationRepository
from app.notifications.schemas.notification import (
    NotificationCreate,
    NotificationPage,
    NotificationResponse,
)
from app.realtime.broadcaster import Broadcaster

logger = logging.getLogger(__name__)


def to_notification_response(notification: Notification) -> NotificationResponse:
    return NotificationResponse(
        notification_id=notification.id,
        user_id=notification.user_id,
        type=NotificationType(notification.notification_type),
        title=notification.title,
        message=notification.message,
        related_id=notification.related_id,
        is_read=notification.is_read,
        created_at=notification.created_at,
    )


class NotificationService:
    def __init__(self, db: Session, broadcaster: Broadcaster) -> None:
        self.db = db
        self.broadcaster = broadcaster
        self.notifications = NotificationRepository(db)

    def notify_user(self, data: NotificationCreate) -> NotificationResponse:
        """Persist a notification and push it to the recipient's open sockets.

        Delivery is best-effort; the stored record is the source of truth and
        a client that was offline picks it up from the list endpoint.
        """
        notification = self.notifications.create(data)
        response = to_notification_response(notification)

        payload = response.model_dump(mode="json")
        try:
            self.broadcaster.to_user(data.user_id, "notification:new", payload)
            self.broadcaster.to_user(data.user_id, f"notification:{data.type.value}", payload)
        except Exception as exc:
            logger.warning(
                "Failed to push notification %s to user %s: %s",
                notification.id,
                data.user_id,
                exc,
            )

        return response

    def list_user_notifications(
        self,
        user_id: UUID,
        limit: int = settings.NOTIFICATION_PAGE_DEFAULT,
        offset: int = 0,
        only_unread: bool = False,
    ) -> NotificationPage:
        limit = max(1, min(limit, settings.NOTIFICATION_PAGE_MAX))
        offset = max(0, offset)

        items = self.notifications.list_for_user(
            user_id, limit=limit, offset=offset, only_unread=only_unread
        )
        total = self.notifications.count_for_user(user_id, only_unread=only_unread)
        unread_count = self.notifications.count_for_user(user_id, only_unread=True)

        return NotificationPage(
            items=[to_notification_response(n) for n in items],
            total=total,
            unread_count=unread_count,
            limit=limit,
            offset=offset,
        )

    def mark_notification_as_read(self, user_id: UUID, notification_id: int) -> None:
        # Foreign or unknown ids are ignored so existence is not leaked
        if not self.notifications.mark_read(notification_id, user_id):
            logger.debug(
                "mark_read matched nothing (user=%s, notification=%s)", user_id, notification_id
            )

    def mark_all_notifications_as_read(self, user_id: UUID) -> int:
        return self.notifications.mark_all_read(user_id)
