"""In-process WebSocket connection registry.

Connections are grouped under string keys (``user:<id>`` and
``conversation:<id>``). Services publish through the :class:`Broadcaster`
methods from whatever thread they run on; each send is scheduled on the
event loop that owns the target socket and is never awaited by the caller.
"""

import asyncio
import logging
import threading
from collections import defaultdict
from collections.abc import Coroutine, Iterable
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

from fastapi import Depends, WebSocket
from fastapi.encoders import jsonable_encoder

from app.realtime.broadcaster import Broadcaster, conversation_group, user_group

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class Connection:
    websocket: WebSocket
    user_id: UUID
    loop: asyncio.AbstractEventLoop
    # Serialises frames so they reach the client in publish order
    send_lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    groups: set[str] = field(default_factory=set)


class ConnectionManager:
    def __init__(self) -> None:
        self._groups: dict[str, set[Connection]] = defaultdict(set)
        self._lock = threading.Lock()
        self._tasks: set[asyncio.Task[None]] = set()

    async def connect(self, websocket: WebSocket, user_id: UUID) -> Connection:
        await websocket.accept()
        connection = Connection(
            websocket=websocket, user_id=user_id, loop=asyncio.get_running_loop()
        )
        self.join(connection, user_group(user_id))
        return connection

    def disconnect(self, connection: Connection) -> None:
        with self._lock:
            for group in connection.groups:
                members = self._groups.get(group)
                if members is None:
                    continue
                members.discard(connection)
                if not members:
                    del self._groups[group]
            connection.groups.clear()

    def join(self, connection: Connection, group: str) -> None:
        with self._lock:
            self._groups[group].add(connection)
            connection.groups.add(group)

    def leave(self, connection: Connection, group: str) -> None:
        with self._lock:
            members = self._groups.get(group)
            if members is not None:
                members.discard(connection)
                if not members:
                    del self._groups[group]
            connection.groups.discard(group)

    def members(self, group: str) -> set[Connection]:
        with self._lock:
            return set(self._groups.get(group, ()))

    def to_user(self, user_id: UUID, event: str, payload: dict[str, Any]) -> None:
        self._publish([user_group(user_id)], event, payload)

    def to_conversation(
        self,
        conversation_id: int,
        event: str,
        payload: dict[str, Any],
        also_users: Iterable[UUID] = (),
    ) -> None:
        groups = [conversation_group(conversation_id)]
        groups.extend(user_group(user_id) for user_id in also_users)
        self._publish(groups, event, payload)

    async def send_to(self, connection: Connection, event: str, payload: dict[str, Any]) -> None:
        """Reply directly to one socket, e.g. a scoped error frame."""
        await self._send(connection, {"event": event, "data": jsonable_encoder(payload)})

    def _publish(self, groups: list[str], event: str, payload: dict[str, Any]) -> None:
        with self._lock:
            targets: set[Connection] = set()
            for group in groups:
                targets.update(self._groups.get(group, ()))
        if not targets:
            return

        frame = {"event": event, "data": jsonable_encoder(payload)}
        for connection in targets:
            self._schedule(connection, self._send(connection, frame))

    def _schedule(self, connection: Connection, coro: Coroutine[Any, Any, None]) -> None:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is connection.loop:
            task = running.create_task(coro)
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            return

        try:
            asyncio.run_coroutine_threadsafe(coro, connection.loop)
        except RuntimeError:
            # Owning loop already shut down
            coro.close()
            logger.info("Dropping connection of user %s: event loop closed", connection.user_id)
            self.disconnect(connection)

    async def _send(self, connection: Connection, frame: dict[str, Any]) -> None:
        try:
            async with connection.send_lock:
                await connection.websocket.send_json(frame)
        except Exception:
            logger.warning(
                "Failed to deliver %s to user %s, dropping connection",
                frame.get("event"),
                connection.user_id,
                exc_info=True,
            )
            self.disconnect(connection)


manager = ConnectionManager()


def get_connection_manager() -> ConnectionManager:
    return manager


def get_broadcaster(
    connections: ConnectionManager = Depends(get_connection_manager),
) -> Broadcaster:
    return connections
