"""Board channel WebSocket endpoint (presence and live collaboration)."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from blupi.api.deps import BOARD_READ_CHECK_DEP, get_board_hub
from blupi.core.auth import get_websocket_auth_context
from blupi.core.logging import get_logger
from blupi.realtime import protocol
from blupi.realtime.hub import Connection, dispatch

if TYPE_CHECKING:
    from blupi.realtime.hub import BoardReadCheck

router = APIRouter(tags=["realtime"])
logger = get_logger(__name__)


@router.websocket("/ws")
@router.websocket("/ws-blupi")
async def board_channel(
    websocket: WebSocket,
    can_read: BoardReadCheck = BOARD_READ_CHECK_DEP,
) -> None:
    """Authenticate with `?token=`, then exchange channel messages until close."""
    auth = await get_websocket_auth_context(websocket)
    if auth is None or auth.user is None:
        await websocket.close(code=protocol.CLOSE_UNAUTHORIZED, reason="Authentication required")
        return

    user = auth.user
    hub = get_board_hub(websocket)
    await websocket.accept()
    connection = Connection(
        websocket,
        user_id=user.id,
        display_name=user.preferred_name or user.name or user.email or "Anonymous",
    )
    await hub.register(connection)
    logger.info("realtime.connected user_id=%s connection_id=%s", user.id, connection.id)
    try:
        while True:
            raw = await websocket.receive_text()
            await dispatch(hub, connection, raw, can_read=can_read)
    except WebSocketDisconnect as exc:
        logger.info(
            "realtime.closed user_id=%s connection_id=%s code=%s",
            user.id,
            connection.id,
            exc.code,
        )
    finally:
        await hub.disconnect(connection)
