"""Notification inbox endpoints for the authenticated user."""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status
from sqlmodel import col

from blupi.api.deps import SESSION_DEP, USER_DEP
from blupi.db import crud
from blupi.models.notifications import Notification
from blupi.schemas.common import OkResponse
from blupi.schemas.notifications import NotificationRead, UnreadCountRead
from blupi.services.notifications import mark_all_read, mark_read, unread_count

if TYPE_CHECKING:
    from sqlmodel.ext.asyncio.session import AsyncSession

    from blupi.models.users import User

router = APIRouter(prefix="/notifications", tags=["notifications"])


async def _require_notification(
    session: AsyncSession,
    notification_id: UUID,
    user: User,
) -> Notification:
    notification = await Notification.objects.by_id(notification_id).first(session)
    if notification is None or notification.to_user_id != user.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)
    return notification


@router.get("", response_model=list[NotificationRead])
async def list_notifications(
    limit: int = Query(default=50, ge=1, le=200),
    unread_only: bool = Query(default=False),
    session: AsyncSession = SESSION_DEP,
    user: User = USER_DEP,
) -> list[NotificationRead]:
    """List the caller's notifications, newest first."""
    query = Notification.objects.filter_by(to_user_id=user.id)
    if unread_only:
        query = query.filter(col(Notification.read).is_(False))
    notifications = (
        await query.order_by(col(Notification.created_at).desc()).limit(limit).all(session)
    )
    return [NotificationRead.model_validate(n, from_attributes=True) for n in notifications]


@router.get("/unread-count", response_model=UnreadCountRead)
async def get_unread_count(
    session: AsyncSession = SESSION_DEP,
    user: User = USER_DEP,
) -> UnreadCountRead:
    return UnreadCountRead(count=await unread_count(session, user.id))


@router.post("/read-all", response_model=UnreadCountRead)
async def read_all_notifications(
    session: AsyncSession = SESSION_DEP,
    user: User = USER_DEP,
) -> UnreadCountRead:
    """Mark every notification read; returns the remaining unread count (0)."""
    await mark_all_read(session, user.id)
    return UnreadCountRead(count=0)


@router.post("/{notification_id}/read", response_model=NotificationRead)
async def read_notification(
    notification_id: UUID,
    session: AsyncSession = SESSION_DEP,
    user: User = USER_DEP,
) -> NotificationRead:
    notification = await _require_notification(session, notification_id, user)
    mark_read(notification)
    notification = await crud.save(session, notification)
    return NotificationRead.model_validate(notification, from_attributes=True)


@router.delete("/{notification_id}", response_model=OkResponse)
async def delete_notification(
    notification_id: UUID,
    session: AsyncSession = SESSION_DEP,
    user: User = USER_DEP,
) -> OkResponse:
    notification = await _require_notification(session, notification_id, user)
    await crud.delete(session, notification)
    return OkResponse()
