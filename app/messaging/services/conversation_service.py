"""Conversation lifecycle, message delivery and read tracking."""

import logging
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import ForbiddenError, NotFoundError, ValidationError
from app.messaging.models.conversation import Conversation
from app.messaging.models.message import Message
from app.messaging.repositories.conversation_repository import ConversationRepository
from app.messaging.repositories.message_repository import MessageRepository
from app.messaging.schemas.conversation import ConversationResponse, ConversationSummary
from app.messaging.schemas.message import MessageResponse
from app.notifications.models.notification import NotificationType
from app.notifications.schemas.notification import NotificationCreate
from app.notifications.services.notification_service import NotificationService
from app.realtime.broadcaster import Broadcaster
from app.reports.repositories.report_repository import ReportRef, ReportRepository

logger = logging.getLogger(__name__)

NEW_CONVERSATION_TITLE = "New conversation"
NEW_MESSAGE_TITLE = "New message"
REPORT_TITLE_PREVIEW = 80
MESSAGE_PREVIEW = 120


def truncate(text: str, limit: int) -> str:
    """Cut ``text`` to ``limit`` characters, appending an ellipsis when shortened."""
    if len(text) <= limit:
        return text
    return f"{text[:limit]}..."


def to_conversation_response(conversation: Conversation) -> ConversationResponse:
    return ConversationResponse(
        conversation_id=conversation.id,
        report_id=conversation.report_id,
        user1_id=conversation.user1_id,
        user2_id=conversation.user2_id,
        created_at=conversation.created_at,
        updated_at=conversation.updated_at,
    )


def to_message_response(message: Message) -> MessageResponse:
    return MessageResponse(
        message_id=message.id,
        conversation_id=message.conversation_id,
        sender_id=message.sender_id,
        message_text=message.message_text,
        is_read=message.is_read,
        created_at=message.created_at,
    )


@dataclass
class SendMessageResult:
    message: MessageResponse
    conversation: ConversationResponse
    recipient_id: UUID


class ConversationService:
    """Entry point for every chat operation, shared by the HTTP routes and the gateway.

    Authorisation is participant-based: a conversation that exists but does
    not include the caller is reported as missing.
    """

    def __init__(self, db: Session, broadcaster: Broadcaster) -> None:
        self.db = db
        self.broadcaster = broadcaster
        self.conversations = ConversationRepository(db)
        self.messages = MessageRepository(db)
        self.reports = ReportRepository(db)
        self.notifications = NotificationService(db, broadcaster)

    def create_or_get_conversation(
        self, report_id: int, requester_id: UUID
    ) -> ConversationResponse:
        report = self._get_report_for_requester(report_id, requester_id)

        conversation, created = self.conversations.find_or_create(
            report_id=report.report_id,
            owner_id=report.owner_id,
            participant_id=requester_id,
        )

        if created:
            logger.info(
                "Conversation %s opened on report %s by user %s",
                conversation.id,
                report.report_id,
                requester_id,
            )
            self._notify(
                NotificationCreate(
                    user_id=report.owner_id,
                    type=NotificationType.MESSAGE,
                    title=NEW_CONVERSATION_TITLE,
                    message=(
                        "Someone wants to talk about your report "
                        f'"{truncate(report.title, REPORT_TITLE_PREVIEW)}"'
                    ),
                    related_id=conversation.id,
                )
            )

        return to_conversation_response(conversation)

    def conversation_exists(self, report_id: int, requester_id: UUID) -> bool:
        report = self._get_report_for_requester(report_id, requester_id)
        return self.conversations.exists(report.report_id, report.owner_id, requester_id)

    def get_user_conversations(self, user_id: UUID) -> list[ConversationSummary]:
        return self.conversations.list_for_user(user_id)

    def get_conversation(self, conversation_id: int, user_id: UUID) -> ConversationResponse:
        return to_conversation_response(self._get_conversation_or_404(conversation_id, user_id))

    def get_conversation_messages(
        self, conversation_id: int, user_id: UUID
    ) -> list[MessageResponse]:
        self._get_conversation_or_404(conversation_id, user_id)
        messages = self.messages.list_by_conversation(conversation_id)
        return [to_message_response(m) for m in messages]

    def send_message(
        self, conversation_id: int, sender_id: UUID, message_text: str
    ) -> SendMessageResult:
        """Store a message and fan it out.

        The new message is relayed as ``message:new`` to everyone viewing the
        conversation and to the recipient's personal channel, and the
        recipient gets a ``message`` notification with a short preview.
        """
        conversation = self._get_conversation_or_404(conversation_id, sender_id)
        self._validate_text(message_text)

        # Message row and updated_at bump are committed together
        message = self.messages.create(conversation_id, sender_id, message_text, commit=False)
        self.conversations.touch(conversation_id, commit=False)
        self.messages.commit("send message", conversation_id=conversation_id)

        recipient_id = conversation.other_participant(sender_id)
        message_response = to_message_response(message)

        try:
            self.broadcaster.to_conversation(
                conversation_id,
                "message:new",
                message_response.model_dump(mode="json"),
                also_users=[recipient_id],
            )
        except Exception as exc:
            logger.warning("Failed to relay message %s: %s", message.id, exc)

        self._notify(
            NotificationCreate(
                user_id=recipient_id,
                type=NotificationType.MESSAGE,
                title=NEW_MESSAGE_TITLE,
                message=truncate(message_text, MESSAGE_PREVIEW),
                related_id=conversation_id,
            )
        )

        return SendMessageResult(
            message=message_response,
            conversation=to_conversation_response(conversation),
            recipient_id=recipient_id,
        )

    def mark_conversation_as_read(self, conversation_id: int, user_id: UUID) -> int:
        self._get_conversation_or_404(conversation_id, user_id)
        return self.messages.mark_read(conversation_id, user_id)

    def delete_conversation(self, conversation_id: int, user_id: UUID) -> None:
        self._get_conversation_or_404(conversation_id, user_id)
        self.conversations.delete(conversation_id)
        logger.info("Conversation %s deleted by user %s", conversation_id, user_id)

    def _get_report_for_requester(self, report_id: int, requester_id: UUID) -> ReportRef:
        report = self.reports.get_report(report_id)
        if report is None:
            raise NotFoundError("Report not found")
        if report.owner_id == requester_id:
            raise ForbiddenError("You cannot start a conversation with yourself")
        return report

    def _get_conversation_or_404(self, conversation_id: int, user_id: UUID) -> Conversation:
        conversation = self.conversations.find_by_id(conversation_id, user_id)
        if conversation is None:
            raise NotFoundError("Conversation not found")
        return conversation

    @staticmethod
    def _validate_text(message_text: str) -> None:
        if not message_text or not message_text.strip():
            raise ValidationError("Message cannot be empty", field="message_text")
        if len(message_text) > settings.MESSAGE_MAX_LENGTH:
            raise ValidationError(
                f"Message cannot exceed {settings.MESSAGE_MAX_LENGTH} characters",
                field="message_text",
            )

    def _notify(self, data: NotificationCreate) -> None:
        try:
            self.notifications.notify_user(data)
        except Exception as exc:
            logger.warning(
                "Failed to create %s notification for user %s: %s",
                data.type.value,
                data.user_id,
                exc,
            )
