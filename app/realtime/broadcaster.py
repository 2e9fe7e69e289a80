from collections.abc import Iterable
from typing import Any, Protocol
from uuid import UUID


def user_group(user_id: UUID | str) -> str:
    return f"user:{user_id}"


def conversation_group(conversation_id: int) -> str:
    return f"conversation:{conversation_id}"


class Broadcaster(Protocol):
    """Outbound real-time channel used by the services.

    Implementations must never raise into the caller and must not block:
    a mutation that already committed stays committed regardless of delivery.
    """

    def to_user(self, user_id: UUID, event: str, payload: dict[str, Any]) -> None: ...

    def to_conversation(
        self,
        conversation_id: int,
        event: str,
        payload: dict[str, Any],
        also_users: Iterable[UUID] = (),
    ) -> None:
        """Deliver to the conversation group plus the personal groups of ``also_users``.

        A connection that belongs to several of those groups receives the event once.
        """
        ...


class NullBroadcaster:
    """Drops every event. Used by scripts and anywhere no gateway is running."""

    def to_user(self, user_id: UUID, event: str, payload: dict[str, Any]) -> None:
        return None

    def to_conversation(
        self,
        conversation_id: int,
        event: str,
        payload: dict[str, Any],
        also_users: Iterable[UUID] = (),
    ) -> None:
        return None
