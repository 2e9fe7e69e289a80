import logging
from typing import cast
from uuid import UUID

from sqlalchemy.orm import Session

from app.core.repository import BaseRepository
from app.messaging.models.message import Message

logger = logging.getLogger(__name__)


class MessageRepository(BaseRepository[Message]):
    def __init__(self, db: Session) -> None:
        super().__init__(db, Message)

    def create(
        self, conversation_id: int, sender_id: UUID, message_text: str, *, commit: bool = True
    ) -> Message:
        """Insert a message. With ``commit=False`` it is only flushed, for the caller to commit."""
        with self.guard("create message", conversation_id=conversation_id):
            message = Message(
                conversation_id=conversation_id,
                sender_id=sender_id,
                message_text=message_text,
                is_read=False,
            )
            if commit:
                return self.add(message)
            self.db.add(message)
            self.db.flush()
        return message

    def list_by_conversation(self, conversation_id: int) -> list[Message]:
        """Full history, oldest first. Equal timestamps fall back to insertion order."""
        with self.guard("list messages", conversation_id=conversation_id):
            messages = (
                self.db.query(Message)
                .filter(Message.conversation_id == conversation_id)
                .order_by(Message.created_at.asc(), Message.id.asc())
                .all()
            )
        return cast(list[Message], messages)

    def mark_read(self, conversation_id: int, reader_id: UUID) -> int:
        """Flag every unread message the reader did not send. Returns how many changed."""
        with self.guard("mark messages read", conversation_id=conversation_id):
            updated = (
                self.db.query(Message)
                .filter(
                    Message.conversation_id == conversation_id,
                    Message.sender_id != reader_id,
                    Message.is_read.is_(False),
                )
                .update({Message.is_read: True}, synchronize_session=False)
            )
            self.db.commit()
        if updated:
            logger.debug("Marked %d messages read in conversation %s", updated, conversation_id)
        return int(updated)
