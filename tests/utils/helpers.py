from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

from app.auth.models.user import User
from app.core.security import create_access_token


def create_user_token(user: User) -> str:
    return create_access_token({"sub": str(user.id), "email": user.email, "role": user.role})


def create_auth_headers(token: str) -> dict[str, str]:
    """Create Authorization headers with Bearer token."""
    return {"Authorization": f"Bearer {token}"}


def assert_error_envelope(data: dict[str, Any], message: str | None = None) -> None:
    assert set(data) <= {"message", "errors"}
    assert isinstance(data["message"], str)
    if message is not None:
        assert data["message"] == message


@dataclass
class BroadcastCall:
    target: str
    event: str
    payload: dict[str, Any]
    also_users: tuple[UUID, ...] = field(default_factory=tuple)


class RecordingBroadcaster:
    """Broadcaster double that keeps every published event in memory."""

    def __init__(self) -> None:
        self.calls: list[BroadcastCall] = []

    def to_user(self, user_id: UUID, event: str, payload: dict[str, Any]) -> None:
        self.calls.append(BroadcastCall(f"user:{user_id}", event, payload))

    def to_conversation(
        self,
        conversation_id: int,
        event: str,
        payload: dict[str, Any],
        also_users: Iterable[UUID] = (),
    ) -> None:
        self.calls.append(
            BroadcastCall(f"conversation:{conversation_id}", event, payload, tuple(also_users))
        )

    def events(self, event: str) -> list[BroadcastCall]:
        return [call for call in self.calls if call.event == event]


class FailingBroadcaster:
    def to_user(self, user_id: UUID, event: str, payload: dict[str, Any]) -> None:
        raise RuntimeError("socket layer down")

    def to_conversation(
        self,
        conversation_id: int,
        event: str,
        payload: dict[str, Any],
        also_users: Iterable[UUID] = (),
    ) -> None:
        raise RuntimeError("socket layer down")
