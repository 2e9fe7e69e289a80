from uuid import UUID

from pydantic import BaseModel

from app.core.schemas import UTCDatetime


class ConversationResponse(BaseModel):
    conversation_id: int
    report_id: int
    user1_id: UUID
    user2_id: UUID
    created_at: UTCDatetime
    updated_at: UTCDatetime


class ConversationExists(BaseModel):
    exists: bool


class ConversationSummary(BaseModel):
    """One row of a user's inbox, computed at read time."""

    conversation_id: int
    report_id: int
    report_title: str
    other_user_id: UUID
    other_user_name: str
    last_message_text: str | None = None
    last_message_at: UTCDatetime | None = None
    unread_count: int = 0
    updated_at: UTCDatetime
