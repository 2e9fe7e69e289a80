"""Persistence and identity rules for conversations."""

import logging
from datetime import UTC, datetime
from typing import cast
from uuid import UUID

from sqlalchemy import and_, case, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.auth.models.user import User
from app.core.repository import BaseRepository
from app.messaging.models.conversation import Conversation
from app.messaging.models.message import Message
from app.messaging.schemas.conversation import ConversationSummary
from app.reports.models.report import Report

logger = logging.getLogger(__name__)

DELETED_USER_NAME = "Deleted user"


class ConversationRepository(BaseRepository[Conversation]):
    def __init__(self, db: Session) -> None:
        super().__init__(db, Conversation)

    def find_by_id(self, conversation_id: int, user_id: UUID) -> Conversation | None:
        """Return the conversation only when ``user_id`` takes part in it.

        Outsiders get None, exactly as if the row did not exist.
        """
        with self.guard("load conversation", conversation_id=conversation_id):
            conversation = (
                self.db.query(Conversation)
                .filter(
                    Conversation.id == conversation_id,
                    or_(Conversation.user1_id == user_id, Conversation.user2_id == user_id),
                )
                .first()
            )
        return cast(Conversation | None, conversation)

    def find_or_create(
        self, report_id: int, owner_id: UUID, participant_id: UUID
    ) -> tuple[Conversation, bool]:
        """Return the single conversation for (report, owner, participant).

        The owner always lands in ``user1_id``. When two callers race on the
        same triple, the loser's INSERT trips the unique constraint; that
        case is absorbed by re-reading the winner's row.

        Returns:
            The conversation and whether this call created it.
        """
        with self.guard("create conversation", report_id=report_id):
            existing = self._find_by_triple(report_id, owner_id, participant_id)
            if existing is not None:
                return existing, False

            conversation = Conversation(
                report_id=report_id,
                user1_id=owner_id,
                user2_id=participant_id,
            )
            self.db.add(conversation)
            try:
                self.db.commit()
            except IntegrityError:
                self.db.rollback()
                existing = self._find_by_triple(report_id, owner_id, participant_id)
                if existing is None:
                    # Constraint violation that was not the duplicate triple
                    raise
                logger.info(
                    "Concurrent conversation create absorbed (report=%s, owner=%s, participant=%s)",
                    report_id,
                    owner_id,
                    participant_id,
                )
                return existing, False

            self.db.refresh(conversation)
        return conversation, True

    def exists(self, report_id: int, owner_id: UUID, participant_id: UUID) -> bool:
        with self.guard("check conversation", report_id=report_id):
            return self._find_by_triple(report_id, owner_id, participant_id) is not None

    def list_for_user(self, user_id: UUID) -> list[ConversationSummary]:
        """Build the inbox of ``user_id``.

        Conversations without messages sort last; the rest by latest message
        first, then by ``updated_at``.
        """
        last_message_text = (
            select(Message.message_text)
            .where(Message.conversation_id == Conversation.id)
            .order_by(Message.created_at.desc(), Message.id.desc())
            .limit(1)
            .correlate(Conversation)
            .scalar_subquery()
        )
        last_message_at = (
            select(func.max(Message.created_at))
            .where(Message.conversation_id == Conversation.id)
            .correlate(Conversation)
            .scalar_subquery()
        )
        unread_count = (
            select(func.count(Message.id))
            .where(
                Message.conversation_id == Conversation.id,
                Message.sender_id != user_id,
                Message.is_read.is_(False),
            )
            .correlate(Conversation)
            .scalar_subquery()
        )
        other_user_id = case(
            (Conversation.user1_id == user_id, Conversation.user2_id),
            else_=Conversation.user1_id,
        )

        query = (
            select(
                Conversation.id,
                Conversation.report_id,
                Report.title,
                other_user_id.label("other_user_id"),
                User.name,
                last_message_text.label("last_message_text"),
                last_message_at.label("last_message_at"),
                unread_count.label("unread_count"),
                Conversation.updated_at,
            )
            .select_from(Conversation)
            .join(Report, Report.id == Conversation.report_id)
            .outerjoin(User, User.id == other_user_id)
            .where(or_(Conversation.user1_id == user_id, Conversation.user2_id == user_id))
            .order_by(
                case((last_message_at.is_(None), 1), else_=0),
                last_message_at.desc(),
                Conversation.updated_at.desc(),
            )
        )

        with self.guard("list conversations", user_id=user_id):
            rows = self.db.execute(query).all()

        return [
            ConversationSummary(
                conversation_id=row[0],
                report_id=row[1],
                report_title=row[2],
                other_user_id=row[3],
                other_user_name=row[4] or DELETED_USER_NAME,
                last_message_text=row[5],
                last_message_at=row[6],
                unread_count=int(row[7] or 0),
                updated_at=row[8],
            )
            for row in rows
        ]

    def touch(self, conversation_id: int, *, commit: bool = True) -> None:
        with self.guard("update conversation", conversation_id=conversation_id):
            self.db.query(Conversation).filter(Conversation.id == conversation_id).update(
                {Conversation.updated_at: datetime.now(UTC)}, synchronize_session=False
            )
            if commit:
                self.db.commit()

    def delete(self, conversation_id: int) -> None:
        """Remove the conversation together with all of its messages."""
        with self.guard("delete conversation", conversation_id=conversation_id):
            conversation = self.db.get(Conversation, conversation_id)
            if conversation is None:
                return
            self.db.delete(conversation)
            self.db.commit()

    def _find_by_triple(
        self, report_id: int, owner_id: UUID, participant_id: UUID
    ) -> Conversation | None:
        conversation = (
            self.db.query(Conversation)
            .filter(
                and_(
                    Conversation.report_id == report_id,
                    Conversation.user1_id == owner_id,
                    Conversation.user2_id == participant_id,
                )
            )
            .first()
        )
        return cast(Conversation | None, conversation)
