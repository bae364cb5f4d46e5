"""JSON message shapes exchanged over the board realtime channel.

Client to server:
    {"type": "subscribe", "boardId": ..., "userName": ..., "userEmoji": ...}
    {"type": "ping"}
    any other `type` is relayed verbatim to the other subscribers.

Server to client:
    users_update, error, pong, board_updated, notification, and relayed
    messages carrying `boardId` / `senderId`.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

CLOSE_NORMAL = 1000
CLOSE_UNAUTHORIZED = 4001
ERROR_FORBIDDEN = 4003

PRESENCE_COLORS = (
    "#EF4444",
    "#F97316",
    "#F59E0B",
    "#10B981",
    "#14B8A6",
    "#3B82F6",
    "#6366F1",
    "#8B5CF6",
    "#EC4899",
    "#64748B",
)


class ProtocolError(ValueError):
    """Inbound frame is not a valid channel message."""


class SubscribeMessage(BaseModel):
    """Join the presence set of one board."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    type: str = "subscribe"
    board_id: UUID
    user_name: str | None = Field(default=None, max_length=200)
    user_emoji: str | None = Field(default=None, max_length=2048)


def presence_color(user_id: UUID | str) -> str:
    """Stable display color for a user, identical on every instance."""
    digest = hashlib.sha256(str(user_id).encode("utf-8")).digest()
    return PRESENCE_COLORS[digest[0] % len(PRESENCE_COLORS)]


def parse_client_message(raw: str) -> dict[str, Any]:
    """Decode one text frame into a message dict with a string `type`."""
    try:
        message = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ProtocolError("Invalid message format") from exc
    if not isinstance(message, dict) or not isinstance(message.get("type"), str):
        raise ProtocolError("Invalid message format")
    return message


def parse_subscribe(message: dict[str, Any]) -> SubscribeMessage:
    try:
        return SubscribeMessage.model_validate(message)
    except ValidationError as exc:
        raise ProtocolError("Invalid subscribe message") from exc


def users_update(board_id: UUID, users: list[dict[str, Any]]) -> dict[str, Any]:
    return {"type": "users_update", "boardId": str(board_id), "users": users}


def error_message(message: str, *, code: int | None = None) -> dict[str, Any]:
    payload: dict[str, Any] = {"type": "error", "message": message}
    if code is not None:
        payload["code"] = code
    return payload


def pong() -> dict[str, Any]:
    return {"type": "pong"}


def relayed(message: dict[str, Any], *, board_id: UUID, sender_id: UUID) -> dict[str, Any]:
    return {**message, "boardId": str(board_id), "senderId": str(sender_id)}


def board_updated(board_id: UUID, *, version: int, actor_id: UUID | None) -> dict[str, Any]:
    """Tell subscribers the persisted board changed and should be refetched."""
    return {
        "type": "board_updated",
        "boardId": str(board_id),
        "version": version,
        "actorId": str(actor_id) if actor_id else None,
    }


def notification_event(notification: dict[str, Any]) -> dict[str, Any]:
    return {"type": "notification", "data": notification}
