"""Redis presence store and pub/sub fan-out shared by every API instance.

Presence for a board lives in the hash `<prefix>:presence:<board_id>` keyed by
connection id. Each entry carries a `last_seen` stamp refreshed on heartbeat;
reads drop entries older than the TTL so a crashed instance's connections
vanish even while other tabs keep the hash alive.

Events go through one pub/sub channel and carry the publishing instance id;
each instance ignores its own events because it has already delivered them
locally.
"""

from __future__ import annotations

import asyncio
import json
import time
from typing import TYPE_CHECKING, Any
from uuid import uuid4

from redis import asyncio as redis_asyncio
from redis.exceptions import RedisError

from blupi.core.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from uuid import UUID

logger = get_logger(__name__)

LAST_SEEN_FIELD = "last_seen"


def should_deliver_ws_event(event: dict[str, Any], instance_id: str) -> bool:
    """Return whether a pub/sub event originated on another instance."""
    return event.get("source_id") != instance_id


class RedisBackplane:
    """Cross-instance presence and event transport for `BoardHub`."""

    def __init__(
        self,
        client: Any,
        *,
        prefix: str,
        presence_ttl_seconds: int,
        instance_id: str | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.client = client
        self.prefix = prefix
        self.presence_ttl_seconds = presence_ttl_seconds
        self.instance_id = instance_id or uuid4().hex
        self.clock = clock

    @classmethod
    def from_url(cls, url: str, *, prefix: str, presence_ttl_seconds: int) -> RedisBackplane:
        client = redis_asyncio.from_url(url, decode_responses=True)
        return cls(client, prefix=prefix, presence_ttl_seconds=presence_ttl_seconds)

    @property
    def events_channel(self) -> str:
        return f"{self.prefix}:events"

    def presence_key(self, board_id: UUID) -> str:
        return f"{self.prefix}:presence:{board_id}"

    async def add_presence(
        self,
        board_id: UUID,
        connection_id: str,
        entry: dict[str, Any],
    ) -> None:
        key = self.presence_key(board_id)
        stamped = {**entry, LAST_SEEN_FIELD: self.clock()}
        await self.client.hset(key, connection_id, json.dumps(stamped))
        await self.client.expire(key, self.presence_ttl_seconds)

    async def remove_presence(self, board_id: UUID, connection_id: str) -> None:
        await self.client.hdel(self.presence_key(board_id), connection_id)

    async def refresh_presence(
        self,
        board_id: UUID,
        connection_id: str,
        entry: dict[str, Any],
    ) -> None:
        """Heartbeat: restamp this connection's entry and extend the hash TTL."""
        await self.add_presence(board_id, connection_id, entry)

    async def presence(self, board_id: UUID) -> list[dict[str, Any]]:
        """Live entries for a board; entries not refreshed within the TTL are dropped."""
        key = self.presence_key(board_id)
        raw = await self.client.hgetall(key)
        cutoff = self.clock() - self.presence_ttl_seconds
        entries: list[dict[str, Any]] = []
        stale: list[str] = []
        for connection_id, value in raw.items():
            try:
                entry = json.loads(value)
            except json.JSONDecodeError:
                logger.warning("realtime.presence.corrupt board_id=%s", board_id)
                continue
            last_seen = entry.pop(LAST_SEEN_FIELD, None)
            if not isinstance(last_seen, (int, float)) or last_seen < cutoff:
                stale.append(connection_id)
                continue
            entries.append(entry)
        for connection_id in stale:
            await self.client.hdel(key, connection_id)
        if stale:
            logger.info("realtime.presence.expired board_id=%s count=%s", board_id, len(stale))
        return entries

    async def publish(self, event: dict[str, Any]) -> None:
        payload = {**event, "source_id": self.instance_id}
        await self.client.publish(self.events_channel, json.dumps(payload, default=str))

    async def listen(self, handler: Callable[[dict[str, Any]], Awaitable[None]]) -> None:
        """Deliver remote events to `handler` until cancelled."""
        pubsub = self.client.pubsub()
        await pubsub.subscribe(self.events_channel)
        logger.info(
            "realtime.backplane.listening channel=%s instance_id=%s",
            self.events_channel,
            self.instance_id,
        )
        try:
            while True:
                try:
                    message = await pubsub.get_message(
                        ignore_subscribe_messages=True,
                        timeout=1.0,
                    )
                except RedisError:
                    logger.warning("realtime.backplane.receive_failed", exc_info=True)
                    await asyncio.sleep(1.0)
                    continue
                if message is None or message.get("type") != "message":
                    continue
                try:
                    event = json.loads(message["data"])
                except (TypeError, json.JSONDecodeError):
                    logger.warning("realtime.backplane.invalid_event")
                    continue
                if not should_deliver_ws_event(event, self.instance_id):
                    continue
                await handler(event)
        finally:
            await pubsub.unsubscribe(self.events_channel)
            await pubsub.aclose()

    async def close(self) -> None:
        await self.client.aclose()
