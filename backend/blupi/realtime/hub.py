"""Per-board presence tracking and message fan-out for WebSocket clients.

The hub never interprets relayed board messages and keeps no history: a
client that reconnects re-subscribes and refetches the board over HTTP.
"""

from __future__ import annotations

import asyncio
import json
from contextlib import suppress
from typing import TYPE_CHECKING, Any, Protocol
from uuid import UUID, uuid4

from redis.exceptions import RedisError
from starlette.websockets import WebSocketDisconnect

from blupi.core.logging import get_logger
from blupi.realtime import protocol

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from blupi.realtime.backplane import RedisBackplane

    BoardReadCheck = Callable[[UUID, UUID], Awaitable[bool]]

logger = get_logger(__name__)


class TextSink(Protocol):
    """Anything that can push a text frame to one client."""

    async def send_text(self, data: str) -> None: ...


class Connection:
    """One open client socket and the presence identity it announces."""

    def __init__(
        self,
        sink: TextSink,
        *,
        user_id: UUID,
        display_name: str,
        emoji: str | None = None,
    ) -> None:
        self.id = uuid4().hex
        self.sink = sink
        self.user_id = user_id
        self.display_name = display_name
        self.emoji = emoji
        self.color = protocol.presence_color(user_id)
        self.board_id: UUID | None = None

    def presence_entry(self) -> dict[str, Any]:
        entry: dict[str, Any] = {
            "id": str(self.user_id),
            "name": self.display_name,
            "color": self.color,
        }
        if self.emoji:
            entry["emoji"] = self.emoji
        return entry

    async def send(self, payload: dict[str, Any]) -> bool:
        """Send a JSON payload; return False when the socket is gone."""
        try:
            await self.sink.send_text(json.dumps(payload, default=str))
        except (RuntimeError, OSError, WebSocketDisconnect):
            logger.info(
                "realtime.connection.dead connection_id=%s user_id=%s",
                self.id,
                self.user_id,
            )
            return False
        return True


def _dedupe_by_user(entries: list[dict[str, Any]]) -> list[dict[str, Any]]:
    seen: set[str] = set()
    users: list[dict[str, Any]] = []
    for entry in entries:
        user_id = str(entry.get("id"))
        if user_id in seen:
            continue
        seen.add(user_id)
        users.append(entry)
    return users


class BoardHub:
    """In-process registry of board subscriptions, optionally Redis-backed."""

    def __init__(self, *, backplane: RedisBackplane | None = None) -> None:
        self.backplane = backplane
        self._boards: dict[UUID, dict[str, Connection]] = {}
        self._users: dict[UUID, dict[str, Connection]] = {}
        self._lock = asyncio.Lock()
        self._listener: asyncio.Task[None] | None = None
        self._refresher: asyncio.Task[None] | None = None

    async def start(self) -> None:
        if self.backplane is not None and self._listener is None:
            self._listener = asyncio.create_task(self.backplane.listen(self.handle_remote_event))
            # Stamp well inside the TTL so idle sockets stay listed.
            interval = max(self.backplane.presence_ttl_seconds / 3, 1.0)
            self._refresher = asyncio.create_task(self._keep_presence_alive(interval))

    async def stop(self) -> None:
        for task in (self._listener, self._refresher):
            if task is not None:
                task.cancel()
                with suppress(asyncio.CancelledError):
                    await task
        self._listener = None
        self._refresher = None
        if self.backplane is not None:
            await self.backplane.close()

    def subscribers(self, board_id: UUID) -> list[Connection]:
        return list(self._boards.get(board_id, {}).values())

    async def register(self, connection: Connection) -> None:
        async with self._lock:
            self._users.setdefault(connection.user_id, {})[connection.id] = connection

    async def subscribe(
        self,
        connection: Connection,
        board_id: UUID,
        *,
        can_read: BoardReadCheck,
        user_name: str | None = None,
        emoji: str | None = None,
    ) -> bool:
        """Join `board_id` after an access check, leaving any previous board.

        Returns False (and changes nothing) when the user may not read the board.
        """
        if not await can_read(board_id, connection.user_id):
            logger.info(
                "realtime.subscribe.denied board_id=%s user_id=%s",
                board_id,
                connection.user_id,
            )
            return False
        if user_name:
            connection.display_name = user_name
        if emoji:
            connection.emoji = emoji
        previous = connection.board_id
        async with self._lock:
            if previous is not None and previous != board_id:
                self._remove_from_board(connection, previous)
            connection.board_id = board_id
            self._boards.setdefault(board_id, {})[connection.id] = connection
        if self.backplane is not None:
            if previous is not None and previous != board_id:
                await self.backplane.remove_presence(previous, connection.id)
            await self.backplane.add_presence(board_id, connection.id, connection.presence_entry())
        logger.info(
            "realtime.subscribe board_id=%s user_id=%s connection_id=%s",
            board_id,
            connection.user_id,
            connection.id,
        )
        if previous is not None and previous != board_id:
            await self.broadcast_presence(previous)
        await self.broadcast_presence(board_id)
        return True

    def _remove_from_board(self, connection: Connection, board_id: UUID) -> None:
        members = self._boards.get(board_id)
        if members is None:
            return
        members.pop(connection.id, None)
        if not members:
            del self._boards[board_id]

    async def unsubscribe(self, connection: Connection) -> None:
        """Leave the current board, if any, and update its presence."""
        async with self._lock:
            board_id = connection.board_id
            on_board = board_id is not None and connection.id in self._boards.get(board_id, {})
            if board_id is not None:
                self._remove_from_board(connection, board_id)
            connection.board_id = None
        if board_id is None or not on_board:
            return
        if self.backplane is not None:
            await self.backplane.remove_presence(board_id, connection.id)
        logger.info(
            "realtime.unsubscribe board_id=%s user_id=%s connection_id=%s",
            board_id,
            connection.user_id,
            connection.id,
        )
        await self.broadcast_presence(board_id)

    async def disconnect(self, connection: Connection) -> None:
        """Forget a closed connection and leave its board."""
        async with self._lock:
            user_connections = self._users.get(connection.user_id, {})
            user_connections.pop(connection.id, None)
            if not user_connections:
                self._users.pop(connection.user_id, None)
        await self.unsubscribe(connection)

    async def presence(self, board_id: UUID) -> list[dict[str, Any]]:
        """Users on a board, one entry per user even with several tabs open."""
        if self.backplane is not None:
            entries = await self.backplane.presence(board_id)
        else:
            entries = [c.presence_entry() for c in self.subscribers(board_id)]
        return _dedupe_by_user(entries)

    async def broadcast_presence(self, board_id: UUID) -> None:
        message = protocol.users_update(board_id, await self.presence(board_id))
        await self.publish_board_event(board_id, message)

    async def heartbeat(self, connection: Connection) -> None:
        if self.backplane is not None and connection.board_id is not None:
            await self.backplane.refresh_presence(
                connection.board_id,
                connection.id,
                connection.presence_entry(),
            )

    async def refresh_local_presence(self) -> None:
        """Restamp every connection subscribed on this instance."""
        for connections in list(self._boards.values()):
            for connection in list(connections.values()):
                await self.heartbeat(connection)

    async def _keep_presence_alive(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await self.refresh_local_presence()
            except RedisError:
                logger.warning("realtime.presence.refresh_failed", exc_info=True)

    async def relay(self, connection: Connection, message: dict[str, Any]) -> None:
        """Forward a client message to the other subscribers of its board."""
        if connection.board_id is None:
            raise protocol.ProtocolError("Not subscribed to a board")
        payload = protocol.relayed(
            message,
            board_id=connection.board_id,
            sender_id=connection.user_id,
        )
        await self._deliver_to_board(connection.board_id, payload, exclude=connection.id)
        if self.backplane is not None:
            await self.backplane.publish(
                {
                    "target": "board",
                    "board_id": str(connection.board_id),
                    "exclude": connection.id,
                    "payload": payload,
                },
            )

    async def publish_board_event(self, board_id: UUID, event: dict[str, Any]) -> None:
        """Deliver a server event to every subscriber of `board_id`."""
        await self._deliver_to_board(board_id, event)
        if self.backplane is not None:
            await self.backplane.publish(
                {"target": "board", "board_id": str(board_id), "payload": event},
            )

    async def send_to_user(self, user_id: UUID, event: dict[str, Any]) -> None:
        """Deliver a server event to every open connection of one user."""
        await self._deliver_to_user(user_id, event)
        if self.backplane is not None:
            await self.backplane.publish(
                {"target": "user", "user_id": str(user_id), "payload": event},
            )

    async def handle_remote_event(self, event: dict[str, Any]) -> None:
        """Deliver an event published by another instance to local sockets."""
        payload = event.get("payload")
        if not isinstance(payload, dict):
            return
        target = event.get("target")
        if target == "board" and event.get("board_id"):
            await self._deliver_to_board(
                UUID(str(event["board_id"])),
                payload,
                exclude=event.get("exclude"),
            )
        elif target == "user" and event.get("user_id"):
            await self._deliver_to_user(UUID(str(event["user_id"])), payload)

    async def _deliver_to_board(
        self,
        board_id: UUID,
        payload: dict[str, Any],
        *,
        exclude: str | None = None,
    ) -> None:
        async with self._lock:
            targets = [
                conn
                for conn_id, conn in self._boards.get(board_id, {}).items()
                if conn_id != exclude
            ]
        await self._send_all(targets, payload)

    async def _deliver_to_user(self, user_id: UUID, payload: dict[str, Any]) -> None:
        async with self._lock:
            targets = list(self._users.get(user_id, {}).values())
        await self._send_all(targets, payload)

    async def _send_all(self, targets: list[Connection], payload: dict[str, Any]) -> None:
        dead = [conn for conn in targets if not await conn.send(payload)]
        for conn in dead:
            await self.disconnect(conn)


async def dispatch(
    hub: BoardHub,
    connection: Connection,
    raw: str,
    *,
    can_read: BoardReadCheck,
) -> None:
    """Handle one inbound text frame from a client."""
    try:
        message = protocol.parse_client_message(raw)
    except protocol.ProtocolError as exc:
        await connection.send(protocol.error_message(str(exc)))
        return

    message_type = message["type"]
    if message_type == "ping":
        await hub.heartbeat(connection)
        await connection.send(protocol.pong())
        return
    if message_type == "subscribe":
        try:
            subscribe = protocol.parse_subscribe(message)
        except protocol.ProtocolError as exc:
            await connection.send(protocol.error_message(str(exc)))
            return
        allowed = await hub.subscribe(
            connection,
            subscribe.board_id,
            can_read=can_read,
            user_name=subscribe.user_name,
            emoji=subscribe.user_emoji,
        )
        if not allowed:
            await connection.send(
                protocol.error_message(
                    "You do not have access to this board",
                    code=protocol.ERROR_FORBIDDEN,
                ),
            )
        return
    try:
        await hub.relay(connection, message)
    except protocol.ProtocolError as exc:
        await connection.send(protocol.error_message(str(exc)))
