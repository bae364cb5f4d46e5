"""Notification creation and read-state helpers."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlmodel import col

from blupi.core.time import utcnow
from blupi.models.notifications import Notification

if TYPE_CHECKING:
    from uuid import UUID

    from sqlmodel.ext.asyncio.session import AsyncSession


def build_notification(
    *,
    to_user_id: UUID,
    notification_type: str,
    title: str,
    message: str,
    organization_id: UUID | None = None,
    from_user_id: UUID | None = None,
    meta: dict[str, Any] | None = None,
) -> Notification:
    return Notification(
        organization_id=organization_id,
        to_user_id=to_user_id,
        from_user_id=from_user_id,
        type=notification_type,
        title=title,
        message=message,
        meta=meta,
    )


async def create_notifications(
    session: AsyncSession,
    notifications: list[Notification],
) -> list[Notification]:
    """Persist notifications in one commit and return them refreshed."""
    if not notifications:
        return []
    session.add_all(notifications)
    await session.commit()
    for notification in notifications:
        await session.refresh(notification)
    return notifications


def mark_read(notification: Notification) -> None:
    if not notification.read:
        notification.read = True
        notification.read_at = utcnow()


async def unread_count(session: AsyncSession, user_id: UUID) -> int:
    return await Notification.objects.filter(
        col(Notification.to_user_id) == user_id,
        col(Notification.read).is_(False),
    ).count(session)


async def mark_all_read(session: AsyncSession, user_id: UUID) -> int:
    """Mark every unread notification of a user read; return how many changed."""
    unread = await Notification.objects.filter(
        col(Notification.to_user_id) == user_id,
        col(Notification.read).is_(False),
    ).all(session)
    for notification in unread:
        mark_read(notification)
        session.add(notification)
    await session.commit()
    return len(unread)
