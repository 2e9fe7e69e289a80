from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.auth.dependencies import get_current_user
from app.core.schemas import ERROR_RESPONSES, ActionMessage
from app.db.session import get_db
from app.messaging.schemas.conversation import (
    ConversationExists,
    ConversationResponse,
    ConversationSummary,
)
from app.messaging.schemas.message import MessageCreate, MessageResponse
from app.messaging.services.conversation_service import ConversationService
from app.realtime.broadcaster import Broadcaster
from app.realtime.manager import get_broadcaster

router = APIRouter(prefix="/{user_id}", responses=ERROR_RESPONSES)


def get_conversation_service(
    db: Session = Depends(get_db),
    broadcaster: Broadcaster = Depends(get_broadcaster),
) -> ConversationService:
    return ConversationService(db, broadcaster)


@router.get("/reports/{report_id}/conversations/exists", response_model=ConversationExists)
def conversation_exists(
    report_id: int,
    current_user: UUID = Depends(get_current_user),
    service: ConversationService = Depends(get_conversation_service),
) -> ConversationExists:
    return ConversationExists(exists=service.conversation_exists(report_id, current_user))


@router.post(
    "/reports/{report_id}/conversations",
    response_model=ConversationResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_or_get_conversation(
    report_id: int,
    current_user: UUID = Depends(get_current_user),
    service: ConversationService = Depends(get_conversation_service),
) -> ConversationResponse:
    return service.create_or_get_conversation(report_id, current_user)


@router.get("/conversations", response_model=list[ConversationSummary])
def list_conversations(
    current_user: UUID = Depends(get_current_user),
    service: ConversationService = Depends(get_conversation_service),
) -> list[ConversationSummary]:
    return service.get_user_conversations(current_user)


@router.get("/conversations/{conversation_id}/messages", response_model=list[MessageResponse])
def list_messages(
    conversation_id: int,
    current_user: UUID = Depends(get_current_user),
    service: ConversationService = Depends(get_conversation_service),
) -> list[MessageResponse]:
    return service.get_conversation_messages(conversation_id, current_user)


@router.post(
    "/conversations/{conversation_id}/messages",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
)
def send_message(
    conversation_id: int,
    data: MessageCreate,
    current_user: UUID = Depends(get_current_user),
    service: ConversationService = Depends(get_conversation_service),
) -> MessageResponse:
    result = service.send_message(conversation_id, current_user, data.message_text)
    return result.message


@router.post("/conversations/{conversation_id}/read", response_model=ActionMessage)
def mark_conversation_as_read(
    conversation_id: int,
    current_user: UUID = Depends(get_current_user),
    service: ConversationService = Depends(get_conversation_service),
) -> ActionMessage:
    service.mark_conversation_as_read(conversation_id, current_user)
    return ActionMessage(message="Conversation marked as read")


@router.delete("/conversations/{conversation_id}", response_model=ActionMessage)
def delete_conversation(
    conversation_id: int,
    current_user: UUID = Depends(get_current_user),
    service: ConversationService = Depends(get_conversation_service),
) -> ActionMessage:
    service.delete_conversation(conversation_id, current_user)
    return ActionMessage(message="Conversation deleted")
