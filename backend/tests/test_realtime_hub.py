# ruff: noqa: INP001
"""BoardHub presence, relay, and Redis backplane behavior."""

from __future__ import annotations

import json
from typing import Any
from uuid import UUID, uuid4

import pytest

from blupi.realtime import protocol
from blupi.realtime.backplane import RedisBackplane, should_deliver_ws_event
from blupi.realtime.hub import BoardHub, Connection, dispatch


class _Sink:
    def __init__(self, *, broken: bool = False) -> None:
        self.frames: list[dict[str, Any]] = []
        self.broken = broken

    async def send_text(self, data: str) -> None:
        if self.broken:
            raise RuntimeError("socket closed")
        self.frames.append(json.loads(data))


def _conn(user_id: UUID | None = None, name: str = "Ann", **kwargs: Any) -> tuple[Connection, _Sink]:
    sink = _Sink(broken=kwargs.pop("broken", False))
    return Connection(sink, user_id=user_id or uuid4(), display_name=name, **kwargs), sink


async def _allow(_board_id: UUID, _user_id: UUID) -> bool:
    return True


async def _deny(_board_id: UUID, _user_id: UUID) -> bool:
    return False


@pytest.mark.asyncio
async def test_subscribe_broadcasts_presence_to_board() -> None:
    hub = BoardHub()
    board_id = uuid4()
    ann, ann_sink = _conn(name="Ann", emoji="🐙")
    ben, ben_sink = _conn(name="Ben")
    await hub.register(ann)
    await hub.register(ben)

    assert await hub.subscribe(ann, board_id, can_read=_allow) is True
    assert await hub.subscribe(ben, board_id, can_read=_allow, user_name="Benjamin") is True

    latest = ann_sink.frames[-1]
    assert latest == ben_sink.frames[-1]
    assert latest["type"] == "users_update"
    assert latest["boardId"] == str(board_id)
    assert [u["name"] for u in latest["users"]] == ["Ann", "Benjamin"]
    assert latest["users"][0]["emoji"] == "🐙"
    assert "emoji" not in latest["users"][1]


@pytest.mark.asyncio
async def test_presence_lists_a_user_once_across_tabs() -> None:
    hub = BoardHub()
    board_id = uuid4()
    user_id = uuid4()
    first, _ = _conn(user_id)
    second, _ = _conn(user_id)
    for conn in (first, second):
        await hub.register(conn)
        await hub.subscribe(conn, board_id, can_read=_allow)

    users = await hub.presence(board_id)

    assert len(users) == 1
    assert users[0]["id"] == str(user_id)
    assert len(hub.subscribers(board_id)) == 2


@pytest.mark.asyncio
async def test_relay_skips_sender_and_tags_message() -> None:
    hub = BoardHub()
    board_id = uuid4()
    ann, ann_sink = _conn()
    ben, ben_sink = _conn()
    for conn in (ann, ben):
        await hub.register(conn)
        await hub.subscribe(conn, board_id, can_read=_allow)
    ann_before = len(ann_sink.frames)

    await hub.relay(ann, {"type": "cursor", "x": 4})

    assert len(ann_sink.frames) == ann_before
    assert ben_sink.frames[-1] == {
        "type": "cursor",
        "x": 4,
        "boardId": str(board_id),
        "senderId": str(ann.user_id),
    }


@pytest.mark.asyncio
async def test_switching_boards_updates_both_rosters() -> None:
    hub = BoardHub()
    old_board, new_board = uuid4(), uuid4()
    ann, _ = _conn()
    ben, ben_sink = _conn()
    for conn in (ann, ben):
        await hub.register(conn)
        await hub.subscribe(conn, old_board, can_read=_allow)

    await hub.subscribe(ann, new_board, can_read=_allow)

    assert hub.subscribers(old_board) == [ben]
    assert hub.subscribers(new_board) == [ann]
    assert [u["id"] for u in ben_sink.frames[-1]["users"]] == [str(ben.user_id)]


@pytest.mark.asyncio
async def test_dead_connection_is_dropped_during_broadcast() -> None:
    hub = BoardHub()
    board_id = uuid4()
    alive, alive_sink = _conn(name="Alive")
    dead, _ = _conn(name="Dead", broken=True)
    for conn in (alive, dead):
        await hub.register(conn)
        await hub.subscribe(conn, board_id, can_read=_allow)

    await hub.publish_board_event(board_id, {"type": "board_updated"})

    assert hub.subscribers(board_id) == [alive]
    assert alive_sink.frames[-1] == {"type": "board_updated"}
    rosters = [f["users"] for f in alive_sink.frames if f["type"] == "users_update"]
    assert [u["name"] for u in rosters[-1]] == ["Alive"]


@pytest.mark.asyncio
async def test_disconnect_announces_departure() -> None:
    hub = BoardHub()
    board_id = uuid4()
    ann, ann_sink = _conn()
    ben, _ = _conn()
    for conn in (ann, ben):
        await hub.register(conn)
        await hub.subscribe(conn, board_id, can_read=_allow)

    await hub.disconnect(ben)
    await hub.disconnect(ben)

    assert ann_sink.frames[-1]["users"] == [ann.presence_entry()]
    assert hub.subscribers(board_id) == [ann]


@pytest.mark.asyncio
async def test_unsubscribe_leaves_board_but_keeps_user_channel() -> None:
    hub = BoardHub()
    board_id = uuid4()
    ann, ann_sink = _conn()
    ben, ben_sink = _conn()
    for conn in (ann, ben):
        await hub.register(conn)
        await hub.subscribe(conn, board_id, can_read=_allow)

    await hub.unsubscribe(ann)
    await hub.send_to_user(ann.user_id, {"type": "notification", "data": {}})

    assert ann.board_id is None
    assert hub.subscribers(board_id) == [ben]
    assert [u["id"] for u in ben_sink.frames[-1]["users"]] == [str(ben.user_id)]
    assert ann_sink.frames[-1] == {"type": "notification", "data": {}}

@pytest.mark.asyncio
async def test_send_to_user_reaches_every_tab() -> None:
    hub = BoardHub()
    user_id = uuid4()
    first, first_sink = _conn(user_id)
    second, second_sink = _conn(user_id)
    other, other_sink = _conn()
    for conn in (first, second, other):
        await hub.register(conn)

    await hub.send_to_user(user_id, {"type": "notification", "data": {"title": "Hi"}})

    assert first_sink.frames == second_sink.frames == [
        {"type": "notification", "data": {"title": "Hi"}},
    ]
    assert other_sink.frames == []


@pytest.mark.asyncio
async def test_handle_remote_event_delivers_locally() -> None:
    hub = BoardHub()
    board_id = uuid4()
    ann, ann_sink = _conn()
    ben, ben_sink = _conn()
    for conn in (ann, ben):
        await hub.register(conn)
        await hub.subscribe(conn, board_id, can_read=_allow)
    ann_sink.frames.clear()
    ben_sink.frames.clear()

    await hub.handle_remote_event(
        {
            "target": "board",
            "board_id": str(board_id),
            "exclude": ann.id,
            "payload": {"type": "cursor"},
        },
    )
    await hub.handle_remote_event(
        {"target": "user", "user_id": str(ann.user_id), "payload": {"type": "notification"}},
    )
    await hub.handle_remote_event({"target": "board", "board_id": str(board_id), "payload": "x"})

    assert ann_sink.frames == [{"type": "notification"}]
    assert ben_sink.frames == [{"type": "cursor"}]


@pytest.mark.asyncio
async def test_dispatch_reports_protocol_errors() -> None:
    hub = BoardHub()
    conn, sink = _conn()
    await hub.register(conn)

    await dispatch(hub, conn, "not json", can_read=_allow)
    await dispatch(hub, conn, json.dumps({"type": "cursor"}), can_read=_allow)
    await dispatch(hub, conn, json.dumps({"type": "subscribe", "boardId": str(uuid4())}), can_read=_deny)
    await dispatch(hub, conn, json.dumps({"type": "ping"}), can_read=_allow)

    assert sink.frames[0] == {"type": "error", "message": "Invalid message format"}
    assert sink.frames[1] == {"type": "error", "message": "Not subscribed to a board"}
    assert sink.frames[2]["code"] == protocol.ERROR_FORBIDDEN
    assert sink.frames[3] == {"type": "pong"}
    assert conn.board_id is None


class _FakeRedis:
    def __init__(self) -> None:
        self.hashes: dict[str, dict[str, str]] = {}
        self.ttls: dict[str, int] = {}
        self.published: list[tuple[str, dict[str, Any]]] = []
        self.closed = False

    async def hset(self, key: str, field: str, value: str) -> None:
        self.hashes.setdefault(key, {})[field] = value

    async def hdel(self, key: str, *fields: str) -> None:
        for field in fields:
            self.hashes.get(key, {}).pop(field, None)

    async def hgetall(self, key: str) -> dict[str, str]:
        return dict(self.hashes.get(key, {}))

    async def expire(self, key: str, seconds: int) -> None:
        self.ttls[key] = seconds

    async def publish(self, channel: str, message: str) -> None:
        self.published.append((channel, json.loads(message)))

    async def aclose(self) -> None:
        self.closed = True


def test_should_deliver_ws_event_ignores_own_instance() -> None:
    assert should_deliver_ws_event({"source_id": "a"}, "b") is True
    assert should_deliver_ws_event({"source_id": "a"}, "a") is False
    assert should_deliver_ws_event({}, "a") is True


@pytest.mark.asyncio
async def test_hub_with_backplane_keeps_presence_in_redis() -> None:
    redis = _FakeRedis()
    backplane = RedisBackplane(redis, prefix="blupi", presence_ttl_seconds=30, instance_id="i1")
    hub = BoardHub(backplane=backplane)
    board_id = uuid4()
    key = f"blupi:presence:{board_id}"
    ann, _ = _conn(name="Ann")
    await hub.register(ann)

    await hub.subscribe(ann, board_id, can_read=_allow)

    assert json.loads(redis.hashes[key][ann.id])["name"] == "Ann"
    assert redis.ttls[key] == 30
    channel, event = redis.published[-1]
    assert channel == "blupi:events"
    assert event["source_id"] == "i1"
    assert event["target"] == "board"
    assert event["payload"]["type"] == "users_update"

    redis.ttls.clear()
    await hub.heartbeat(ann)
    assert redis.ttls == {key: 30}

    await hub.disconnect(ann)
    assert redis.hashes[key] == {}

    await hub.stop()
    assert redis.closed is True


@pytest.mark.asyncio
async def test_backplane_presence_skips_corrupt_entries() -> None:
    redis = _FakeRedis()
    backplane = RedisBackplane(redis, prefix="p", presence_ttl_seconds=10, clock=lambda: 100.0)
    board_id = uuid4()
    redis.hashes[backplane.presence_key(board_id)] = {
        "c1": json.dumps({"id": "u1", "name": "One", "last_seen": 95.0}),
        "c2": "{broken",
    }

    assert await backplane.presence(board_id) == [{"id": "u1", "name": "One"}]


@pytest.mark.asyncio
async def test_backplane_presence_drops_entries_past_the_ttl() -> None:
    redis = _FakeRedis()
    now = [1000.0]
    backplane = RedisBackplane(redis, prefix="p", presence_ttl_seconds=30, clock=lambda: now[0])
    board_id = uuid4()
    key = backplane.presence_key(board_id)

    await backplane.add_presence(board_id, "crashed", {"id": "u1", "name": "Gone"})
    now[0] = 1020.0
    await backplane.add_presence(board_id, "live", {"id": "u2", "name": "Here"})
    assert json.loads(redis.hashes[key]["live"])["last_seen"] == 1020.0

    now[0] = 1040.0
    assert await backplane.presence(board_id) == [{"id": "u2", "name": "Here"}]
    assert set(redis.hashes[key]) == {"live"}

    now[0] = 1045.0
    await backplane.refresh_presence(board_id, "live", {"id": "u2", "name": "Here"})
    now[0] = 1070.0
    assert await backplane.presence(board_id) == [{"id": "u2", "name": "Here"}]


@pytest.mark.asyncio
async def test_hub_restamps_local_subscribers() -> None:
    redis = _FakeRedis()
    now = [0.0]
    backplane = RedisBackplane(redis, prefix="p", presence_ttl_seconds=30, clock=lambda: now[0])
    hub = BoardHub(backplane=backplane)
    board_id = uuid4()
    ann, _ = _conn(name="Ann")
    await hub.register(ann)
    await hub.subscribe(ann, board_id, can_read=_allow)

    now[0] = 25.0
    await hub.refresh_local_presence()
    now[0] = 50.0

    assert [entry["name"] for entry in await hub.presence(board_id)] == ["Ann"]
