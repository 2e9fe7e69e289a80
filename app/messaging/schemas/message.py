from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from app.core.config import settings
from app.core.schemas import UTCDatetime


class MessageCreate(BaseModel):
    message_text: str = Field(..., min_length=1, max_length=settings.MESSAGE_MAX_LENGTH)

    @field_validator("message_text")
    @classmethod
    def not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Message cannot be empty")
        return value


class MessageResponse(BaseModel):
    message_id: int
    conversation_id: int
    sender_id: UUID
    message_text: str
    is_read: bool = False
    created_at: UTCDatetime
