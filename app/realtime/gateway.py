"""WebSocket endpoint for live chat.

Frames in both directions are JSON objects ``{"event": str, "data": {...}}``.
Client events::

    conversation:join   {conversation_id}
    conversation:leave  {conversation_id}
    message:send        {conversation_id, message_text}
    conversation:read   {conversation_id}

A failing client event is answered with an ``error`` frame on the same
socket only; the connection stays open.
"""

from collections.abc import Awaitable, Callable
from typing import Any, TypeVar
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status
from pydantic import BaseModel, Field
from pydantic import ValidationError as PayloadError
from sqlalchemy.orm import Session, sessionmaker
from starlette.concurrency import run_in_threadpool

from app.auth.dependencies import authenticate_token
from app.core.exceptions import AppError
from app.core.security import extract_bearer
from app.db.session import get_session_factory
from app.messaging.services.conversation_service import ConversationService
from app.realtime.broadcaster import conversation_group
from app.realtime.manager import Connection, ConnectionManager, get_connection_manager

logger = structlog.get_logger(__name__)

T = TypeVar("T")

router = APIRouter()

# Application-defined close code mirroring HTTP 401
WS_4401_UNAUTHORIZED = 4401


class ClientFrame(BaseModel):
    event: str
    data: dict[str, Any] = Field(default_factory=dict)


class ConversationRef(BaseModel):
    conversation_id: int


class OutgoingMessage(ConversationRef):
    message_text: str


FAILURE_MESSAGES = {
    "conversation:join": "Could not join conversation",
    "conversation:leave": "Could not leave conversation",
    "message:send": "Could not send message",
    "conversation:read": "Could not mark conversation as read",
}


def token_from_websocket(websocket: WebSocket) -> str | None:
    return (
        websocket.query_params.get("token")
        or extract_bearer(websocket.headers.get("authorization"))
        or websocket.cookies.get("access_token")
    )


class GatewaySession:
    """Dispatches the client events of one authenticated socket.

    Each event that touches storage runs in a worker thread with its own
    session, which is closed before the reply frame is sent.
    """

    def __init__(
        self,
        connection: Connection,
        connections: ConnectionManager,
        session_factory: sessionmaker[Session],
    ) -> None:
        self.connection = connection
        self.connections = connections
        self.session_factory = session_factory
        self.handlers: dict[str, Callable[[dict[str, Any]], Awaitable[None]]] = {
            "conversation:join": self.join,
            "conversation:leave": self.leave,
            "message:send": self.send_message,
            "conversation:read": self.mark_read,
        }

    @property
    def user_id(self) -> UUID:
        return self.connection.user_id

    async def run(self, operation: Callable[[ConversationService], T]) -> T:
        def unit_of_work() -> T:
            with self.session_factory() as db:
                return operation(ConversationService(db, self.connections))

        return await run_in_threadpool(unit_of_work)

    async def handle(self, raw: str) -> None:
        try:
            frame = ClientFrame.model_validate_json(raw)
        except PayloadError:
            await self.error("Malformed frame")
            return

        handler = self.handlers.get(frame.event)
        if handler is None:
            await self.error(f"Unknown event: {frame.event}", event=frame.event)
            return

        try:
            await handler(frame.data)
        except AppError as exc:
            await self.error(FAILURE_MESSAGES[frame.event], event=frame.event, detail=exc.message)
        except PayloadError:
            await self.error(
                FAILURE_MESSAGES[frame.event], event=frame.event, detail="Invalid payload"
            )
        except Exception:
            logger.exception("ws_event_failed", ws_event=frame.event, user_id=str(self.user_id))
            await self.error(FAILURE_MESSAGES[frame.event], event=frame.event)

    async def join(self, data: dict[str, Any]) -> None:
        ref = ConversationRef.model_validate(data)
        await self.run(lambda service: service.get_conversation(ref.conversation_id, self.user_id))
        self.connections.join(self.connection, conversation_group(ref.conversation_id))
        await self.connections.send_to(
            self.connection, "conversation:joined", {"conversation_id": ref.conversation_id}
        )

    async def leave(self, data: dict[str, Any]) -> None:
        ref = ConversationRef.model_validate(data)
        self.connections.leave(self.connection, conversation_group(ref.conversation_id))
        await self.connections.send_to(
            self.connection, "conversation:left", {"conversation_id": ref.conversation_id}
        )

    async def send_message(self, data: dict[str, Any]) -> None:
        payload = OutgoingMessage.model_validate(data)
        # Relay and notification happen inside the service
        await self.run(
            lambda service: service.send_message(
                payload.conversation_id, self.user_id, payload.message_text
            )
        )

    async def mark_read(self, data: dict[str, Any]) -> None:
        ref = ConversationRef.model_validate(data)
        await self.run(
            lambda service: service.mark_conversation_as_read(ref.conversation_id, self.user_id)
        )
        self.connections.to_conversation(
            ref.conversation_id,
            "conversation:read",
            {"conversation_id": ref.conversation_id, "user_id": str(self.user_id)},
        )

    async def error(
        self, message: str, *, event: str | None = None, detail: str | None = None
    ) -> None:
        payload: dict[str, Any] = {"message": message}
        if event is not None:
            payload["event"] = event
        if detail is not None:
            payload["detail"] = detail
        await self.connections.send_to(self.connection, "error", payload)


@router.websocket("/ws")
async def chat_gateway(
    websocket: WebSocket,
    session_factory: sessionmaker[Session] = Depends(get_session_factory),
    connections: ConnectionManager = Depends(get_connection_manager),
) -> None:
    try:
        identity = authenticate_token(token_from_websocket(websocket))
    except AppError as exc:
        await logger.ainfo("ws_rejected", reason=exc.message, status=exc.status_code)
        code = (
            WS_4401_UNAUTHORIZED
            if exc.status_code == status.HTTP_401_UNAUTHORIZED
            else status.WS_1011_INTERNAL_ERROR
        )
        await websocket.close(code=code)
        return

    connection = await connections.connect(websocket, identity.user_id)
    session = GatewaySession(connection, connections, session_factory)
    await logger.ainfo("ws_connected", user_id=str(identity.user_id), role=identity.role)

    try:
        while True:
            raw = await websocket.receive_text()
            await session.handle(raw)
    except WebSocketDisconnect as exc:
        await logger.ainfo("ws_disconnected", user_id=str(identity.user_id), code=exc.code)
    finally:
        connections.disconnect(connection)
