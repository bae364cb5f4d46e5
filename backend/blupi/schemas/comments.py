"""Schemas for board comment threads."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import Field
from sqlmodel import SQLModel

from blupi.schemas.common import NonEmptyStr

RUNTIME_ANNOTATION_TYPES = (datetime, UUID, NonEmptyStr)


class BoardCommentCreate(SQLModel):
    """Payload for posting a board or block comment.

    `mentions` holds user ids of organization members to notify.
    """

    content: NonEmptyStr
    block_id: str | None = None
    parent_id: UUID | None = None
    mentions: list[UUID] = Field(default_factory=list)


class BoardCommentUpdate(SQLModel):
    """Payload for editing comment text or toggling resolution."""

    content: NonEmptyStr | None = None
    resolved: bool | None = None


class BoardCommentRead(SQLModel):
    """Board comment payload with author display fields."""

    id: UUID
    board_id: UUID
    block_id: str | None = None
    user_id: UUID
    parent_id: UUID | None = None
    content: str
    mentions: list[str]
    resolved: bool
    author_name: str | None = None
    author_email: str | None = None
    created_at: datetime
    updated_at: datetime
