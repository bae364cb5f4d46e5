"""Reconnecting client for the board realtime channel.

The channel carries presence and live hints only. Nothing is replayed after
a reconnect; callers pass `on_reconnect` and refetch the board over HTTP.
"""

from __future__ import annotations

import asyncio
import inspect
import json
from contextlib import suppress
from typing import TYPE_CHECKING, Any, Literal
from urllib.parse import urlencode

from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from blupi.core.logging import get_logger
from blupi.realtime.protocol import CLOSE_NORMAL

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from uuid import UUID

    MessageCallback = Callable[[dict[str, Any]], Awaitable[None] | None]
    ReconnectCallback = Callable[[], Awaitable[None] | None]
    Connector = Callable[[str], Any]
    Waiter = Callable[[float], Awaitable[None]]

ChannelState = Literal["idle", "connecting", "open", "subscribed", "closed"]
DEFAULT_BASE_DELAY = 1.0
DEFAULT_MAX_DELAY = 30.0
ABNORMAL_CLOSE = 1006

logger = get_logger(__name__)


class ChannelNotConnectedError(RuntimeError):
    """Raised by `send` while the socket is down."""


def backoff_delay(
    attempt: int,
    *,
    base: float = DEFAULT_BASE_DELAY,
    max_delay: float = DEFAULT_MAX_DELAY,
) -> float:
    """Delay before reconnect attempt `attempt` (0-based): doubling, capped."""
    return min(base * (2**attempt), max_delay)


async def _maybe_await(result: Awaitable[None] | None) -> None:
    if inspect.isawaitable(result):
        await result


class BoardChannelClient:
    """Subscribe to one board and keep the subscription alive across drops."""

    def __init__(
        self,
        url: str,
        *,
        token: str,
        board_id: UUID | str,
        user_name: str,
        user_emoji: str | None = None,
        base_delay: float = DEFAULT_BASE_DELAY,
        max_delay: float = DEFAULT_MAX_DELAY,
        max_attempts: int | None = None,
        on_message: MessageCallback | None = None,
        on_reconnect: ReconnectCallback | None = None,
        connect: Connector | None = None,
        wait: Waiter | None = None,
    ) -> None:
        self.url = url
        self.token = token
        self.board_id = str(board_id)
        self.user_name = user_name
        self.user_emoji = user_emoji
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.max_attempts = max_attempts
        self.on_message = on_message
        self.on_reconnect = on_reconnect
        self.state: ChannelState = "idle"
        self.attempt = 0
        self.connected_users: list[dict[str, Any]] = []
        self.messages: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
        self.last_close_code: int | None = None
        self._connect = connect or ws_connect
        self._wait = wait or self._wait_or_wake
        self._wake = asyncio.Event()
        self._closing = False
        self._socket: Any = None
        self._task: asyncio.Task[None] | None = None

    def _socket_url(self) -> str:
        separator = "&" if "?" in self.url else "?"
        return f"{self.url}{separator}{urlencode({'token': self.token})}"

    def _subscribe_message(self) -> dict[str, Any]:
        message: dict[str, Any] = {
            "type": "subscribe",
            "boardId": self.board_id,
            "userName": self.user_name,
        }
        if self.user_emoji:
            message["userEmoji"] = self.user_emoji
        return message

    def start(self) -> asyncio.Task[None]:
        """Run the connection loop in a background task."""
        if self._task is None or self._task.done():
            self._closing = False
            self._task = asyncio.create_task(self.run())
        return self._task

    async def run(self) -> None:
        """Connect, subscribe, and read until closed normally or out of attempts."""
        reconnecting = False
        while not self._closing:
            self.state = "connecting"
            code = await self._session(reconnecting=reconnecting)
            self.last_close_code = code
            self.state = "closed"
            self.connected_users = []
            if self._closing or code == CLOSE_NORMAL:
                break
            if self.max_attempts is not None and self.attempt >= self.max_attempts:
                logger.warning(
                    "realtime.client.gave_up board_id=%s attempts=%s",
                    self.board_id,
                    self.attempt,
                )
                break
            delay = backoff_delay(self.attempt, base=self.base_delay, max_delay=self.max_delay)
            self.attempt += 1
            logger.info(
                "realtime.client.reconnecting board_id=%s code=%s attempt=%s delay=%s",
                self.board_id,
                code,
                self.attempt,
                delay,
            )
            await self._wait(delay)
            reconnecting = True
        self.state = "closed"

    async def _session(self, *, reconnecting: bool) -> int:
        try:
            async with self._connect(self._socket_url()) as socket:
                self._socket = socket
                if self._closing:
                    # close() ran during the handshake and saw no socket to close.
                    await socket.close(code=CLOSE_NORMAL)
                    return CLOSE_NORMAL
                self.state = "open"
                self.attempt = 0
                await socket.send(json.dumps(self._subscribe_message()))
                self.state = "subscribed"
                if reconnecting and self.on_reconnect is not None:
                    await _maybe_await(self.on_reconnect())
                async for raw in socket:
                    await self._handle(raw)
                code = getattr(socket, "close_code", None)
        except ConnectionClosed as exc:
            code = exc.rcvd.code if exc.rcvd is not None else None
        except (OSError, WebSocketException) as exc:
            logger.info("realtime.client.connect_failed board_id=%s error=%s", self.board_id, exc)
            code = None
        finally:
            self._socket = None
        return ABNORMAL_CLOSE if code is None else code

    async def _handle(self, raw: str | bytes) -> None:
        try:
            message = json.loads(raw)
        except ValueError:
            logger.warning("realtime.client.invalid_frame board_id=%s", self.board_id)
            return
        if not isinstance(message, dict):
            return
        if message.get("type") == "users_update" and message.get("boardId") == self.board_id:
            users = message.get("users")
            self.connected_users = list(users) if isinstance(users, list) else []
        await self.messages.put(message)
        if self.on_message is not None:
            await _maybe_await(self.on_message(message))

    async def _wait_or_wake(self, delay: float) -> None:
        self._wake.clear()
        with suppress(TimeoutError):
            await asyncio.wait_for(self._wake.wait(), timeout=delay)

    def notify_visible(self) -> None:
        """Skip the pending backoff and reconnect now (page became visible)."""
        if self.state == "closed" and not self._closing:
            self._wake.set()

    async def send(self, message: dict[str, Any]) -> None:
        if self._socket is None or self.state not in ("open", "subscribed"):
            raise ChannelNotConnectedError("Board channel is not connected")
        await self._socket.send(json.dumps(message))

    async def close(self) -> None:
        """Close with code 1000; the loop does not reconnect afterwards."""
        self._closing = True
        self._wake.set()
        if self._socket is not None:
            await self._socket.close(code=CLOSE_NORMAL)
        if self._task is not None:
            await self._task
            self._task = None
        self.state = "closed"
