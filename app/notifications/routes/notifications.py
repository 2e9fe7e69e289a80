from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.auth.dependencies import get_current_user
from app.core.config import settings
from app.core.schemas import ERROR_RESPONSES, ActionMessage
from app.db.session import get_db
from app.notifications.schemas.notification import NotificationPage
from app.notifications.services.notification_service import NotificationService
from app.realtime.broadcaster import Broadcaster
from app.realtime.manager import get_broadcaster

router = APIRouter(prefix="/{user_id}/notifications", responses=ERROR_RESPONSES)


def get_notification_service(
    db: Session = Depends(get_db),
    broadcaster: Broadcaster = Depends(get_broadcaster),
) -> NotificationService:
    return NotificationService(db, broadcaster)


@router.get("", response_model=NotificationPage)
def list_notifications(
    limit: int = Query(settings.NOTIFICATION_PAGE_DEFAULT),
    offset: int = Query(0),
    only_unread: bool = Query(False),
    current_user: UUID = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
) -> NotificationPage:
    """List notifications newest first.

    Out-of-range ``limit`` and ``offset`` values are clamped rather than rejected.
    """
    return service.list_user_notifications(
        current_user, limit=limit, offset=offset, only_unread=only_unread
    )


@router.post("/read-all", response_model=ActionMessage)
def mark_all_notifications_as_read(
    current_user: UUID = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
) -> ActionMessage:
    service.mark_all_notifications_as_read(current_user)
    return ActionMessage(message="All notifications marked as read")


@router.post("/{notification_id}/read", response_model=ActionMessage)
def mark_notification_as_read(
    notification_id: int,
    current_user: UUID = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
) -> ActionMessage:
    service.mark_notification_as_read(current_user, notification_id)
    return ActionMessage(message="Notification marked as read")
