"""Server-originated realtime events published by HTTP handlers.

Publishing is best effort: the persisted state is authoritative, so a failed
push is logged and the HTTP request still succeeds.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from redis.exceptions import RedisError

from blupi.core.logging import get_logger
from blupi.realtime import protocol
from blupi.schemas.notifications import NotificationRead

if TYPE_CHECKING:
    from collections.abc import Iterable
    from uuid import UUID

    from blupi.models.boards import Board
    from blupi.models.notifications import Notification
    from blupi.realtime.hub import BoardHub

logger = get_logger(__name__)


async def publish_board_updated(hub: BoardHub, board: Board, *, actor_id: UUID | None) -> None:
    event = protocol.board_updated(board.id, version=board.content_version, actor_id=actor_id)
    try:
        await hub.publish_board_event(board.id, event)
    except RedisError:
        logger.warning(
            "realtime.publish_failed",
            extra={"board_id": str(board.id), "event_type": "board_updated"},
            exc_info=True,
        )


async def push_notifications(hub: BoardHub, notifications: Iterable[Notification]) -> None:
    for notification in notifications:
        payload = NotificationRead.model_validate(notification, from_attributes=True)
        try:
            await hub.send_to_user(
                notification.to_user_id,
                protocol.notification_event(payload.model_dump(mode="json")),
            )
        except RedisError:
            logger.warning(
                "realtime.publish_failed",
                extra={"user_id": str(notification.to_user_id), "event_type": "notification"},
                exc_info=True,
            )
