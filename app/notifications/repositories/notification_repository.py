import logging
from typing import cast
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.repository import BaseRepository
from app.notifications.models.notification import Notification
from app.notifications.schemas.notification import NotificationCreate

logger = logging.getLogger(__name__)


class NotificationRepository(BaseRepository[Notification]):
    def __init__(self, db: Session) -> None:
        super().__init__(db, Notification)

    def create(self, data: NotificationCreate) -> Notification:
        with self.guard("create notification", user_id=data.user_id):
            notification = Notification(
                user_id=data.user_id,
                notification_type=data.type.value,
                title=data.title,
                message=data.message,
                related_id=data.related_id,
                is_read=False,
            )
            return self.add(notification)

    def list_for_user(
        self, user_id: UUID, *, limit: int, offset: int, only_unread: bool = False
    ) -> list[Notification]:
        """Newest first."""
        with self.guard("list notifications", user_id=user_id):
            query = self.db.query(Notification).filter(Notification.user_id == user_id)
            if only_unread:
                query = query.filter(Notification.is_read.is_(False))
            notifications = (
                query.order_by(Notification.created_at.desc(), Notification.id.desc())
                .offset(offset)
                .limit(limit)
                .all()
            )
        return cast(list[Notification], notifications)

    def count_for_user(self, user_id: UUID, *, only_unread: bool = False) -> int:
        with self.guard("count notifications", user_id=user_id):
            query = self.db.query(func.count(Notification.id)).filter(
                Notification.user_id == user_id
            )
            if only_unread:
                query = query.filter(Notification.is_read.is_(False))
            total = query.scalar()
        return int(total or 0)

    def mark_read(self, notification_id: int, user_id: UUID) -> bool:
        """Mark one notification read. False when it does not exist or belongs to someone else."""
        with self.guard("mark notification read", notification_id=notification_id):
            updated = (
                self.db.query(Notification)
                .filter(Notification.id == notification_id, Notification.user_id == user_id)
                .update({Notification.is_read: True}, synchronize_session=False)
            )
            self.db.commit()
        return bool(updated)

    def mark_all_read(self, user_id: UUID) -> int:
        with self.guard("mark notifications read", user_id=user_id):
            updated = (
                self.db.query(Notification)
                .filter(Notification.user_id == user_id, Notification.is_read.is_(False))
                .update({Notification.is_read: True}, synchronize_session=False)
            )
            self.db.commit()
        return int(updated)
