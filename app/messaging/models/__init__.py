from app.messaging.models.conversation import Conversation
from app.messaging.models.message import Message

__all__ = ["Conversation", "Message"]
