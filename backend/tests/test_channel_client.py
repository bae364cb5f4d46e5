# ruff: noqa: INP001
"""Reconnect and subscription behavior of the board channel client."""

from __future__ import annotations

import asyncio
import json
from contextlib import asynccontextmanager
from typing import Any

import pytest

from blupi.client.channel import (
    ABNORMAL_CLOSE,
    BoardChannelClient,
    ChannelNotConnectedError,
    backoff_delay,
)
from blupi.realtime.protocol import CLOSE_NORMAL


class _FakeSocket:
    def __init__(self, frames: list[str], close_code: int) -> None:
        self.frames = frames
        self.close_code = close_code
        self.sent: list[dict[str, Any]] = []

    async def send(self, data: str) -> None:
        self.sent.append(json.loads(data))

    async def close(self, code: int = CLOSE_NORMAL) -> None:
        self.close_code = code

    def __aiter__(self) -> _FakeSocket:
        return self

    async def __anext__(self) -> str:
        if not self.frames:
            raise StopAsyncIteration
        return self.frames.pop(0)


class _Server:
    """Scripted connector: each entry is a socket to open or an error to raise."""

    def __init__(self, script: list[_FakeSocket | Exception]) -> None:
        self.script = script
        self.urls: list[str] = []
        self.opened: list[_FakeSocket] = []

    def connect(self, url: str) -> Any:
        self.urls.append(url)
        step = self.script.pop(0)
        if isinstance(step, Exception):
            raise step

        @asynccontextmanager
        async def _open():
            self.opened.append(step)
            yield step

        return _open()


class _Waits:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def _client(server: _Server, waits: _Waits, **kwargs: Any) -> BoardChannelClient:
    return BoardChannelClient(
        "ws://localhost:8000/ws",
        token="tok en",
        board_id="board-1",
        user_name="Ann",
        connect=server.connect,
        wait=waits,
        **kwargs,
    )


def test_backoff_delay_doubles_until_capped() -> None:
    assert [backoff_delay(n) for n in range(7)] == [1.0, 2.0, 4.0, 8.0, 16.0, 30.0, 30.0]
    assert backoff_delay(3, base=0.5, max_delay=3.0) == 3.0


@pytest.mark.asyncio
async def test_subscribes_and_stops_on_normal_close() -> None:
    users_update = {"type": "users_update", "boardId": "board-1", "users": [{"id": "u1"}]}
    socket = _FakeSocket([json.dumps(users_update), "garbage"], CLOSE_NORMAL)
    server = _Server([socket])
    waits = _Waits()
    seen: list[dict[str, Any]] = []
    client = _client(server, waits, user_emoji="🐙", on_message=seen.append)

    await client.run()

    assert server.urls == ["ws://localhost:8000/ws?token=tok+en"]
    assert socket.sent == [
        {"type": "subscribe", "boardId": "board-1", "userName": "Ann", "userEmoji": "🐙"},
    ]
    assert seen == [users_update]
    assert client.messages.qsize() == 1
    assert waits.delays == []
    assert client.state == "closed"
    assert client.last_close_code == CLOSE_NORMAL
    assert client.connected_users == []


@pytest.mark.asyncio
async def test_failed_connects_back_off_then_refetch_after_reconnect() -> None:
    server = _Server(
        [
            OSError("refused"),
            OSError("refused"),
            OSError("refused"),
            _FakeSocket([], CLOSE_NORMAL),
        ],
    )
    waits = _Waits()
    reconnects: list[int] = []

    async def on_reconnect() -> None:
        reconnects.append(client.attempt)

    client = _client(server, waits, max_delay=3.0, on_reconnect=on_reconnect)

    await client.run()

    assert waits.delays == [1.0, 2.0, 3.0]
    assert reconnects == [0]
    assert len(server.urls) == 4


@pytest.mark.asyncio
async def test_abnormal_close_after_open_resets_backoff() -> None:
    server = _Server([_FakeSocket([], 4500), _FakeSocket([], CLOSE_NORMAL)])
    waits = _Waits()
    client = _client(server, waits)

    await client.run()

    assert waits.delays == [1.0]
    assert [s.sent[0]["type"] for s in server.opened] == ["subscribe", "subscribe"]


@pytest.mark.asyncio
async def test_gives_up_after_max_attempts() -> None:
    server = _Server([OSError("down")] * 3)
    waits = _Waits()
    client = _client(server, waits, max_attempts=2)

    await client.run()

    assert waits.delays == [1.0, 2.0]
    assert client.attempt == 2
    assert client.last_close_code == ABNORMAL_CLOSE
    assert client.state == "closed"


@pytest.mark.asyncio
async def test_send_requires_an_open_socket() -> None:
    client = _client(_Server([]), _Waits())

    with pytest.raises(ChannelNotConnectedError):
        await client.send({"type": "cursor"})


@pytest.mark.asyncio
async def test_close_during_handshake_stops_the_loop() -> None:
    handshake = asyncio.Event()
    socket = _FakeSocket(["frame"], ABNORMAL_CLOSE)

    @asynccontextmanager
    async def slow_connect(url: str):
        await handshake.wait()
        yield socket

    client = BoardChannelClient(
        "ws://localhost:8000/ws",
        token="t",
        board_id="board-1",
        user_name="Ann",
        connect=slow_connect,
        wait=_Waits(),
    )
    client.start()
    await asyncio.sleep(0)
    assert client.state == "connecting"

    closing = asyncio.create_task(client.close())
    await asyncio.sleep(0)
    handshake.set()
    await asyncio.wait_for(closing, timeout=1)

    assert client.state == "closed"
    assert client.last_close_code == CLOSE_NORMAL
    assert socket.close_code == CLOSE_NORMAL
    assert socket.sent == []
    assert client.messages.empty()
