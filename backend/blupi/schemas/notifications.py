"""Schemas for user notification payloads."""

from __future__ import annotations

from datetime import datetime
from typing import Literal
from uuid import UUID

from sqlmodel import SQLModel

RUNTIME_ANNOTATION_TYPES = (datetime, UUID)
NotificationType = Literal[
    "team_invitation",
    "comment_mention",
    "board_shared",
    "project_shared",
]


class NotificationRead(SQLModel):
    """Notification payload."""

    id: UUID
    organization_id: UUID | None = None
    to_user_id: UUID
    from_user_id: UUID | None = None
    type: str
    title: str
    message: str
    meta: dict[str, object] | None = None
    read: bool
    read_at: datetime | None = None
    created_at: datetime


class UnreadCountRead(SQLModel):
    """Unread notification count for the caller."""

    count: int
