"""Threaded board comments, optionally anchored to a block."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column
from sqlmodel import Field

from blupi.core.time import utcnow
from blupi.models.base import QueryModel

RUNTIME_ANNOTATION_TYPES = (datetime,)


class BoardComment(QueryModel, table=True):
    """Comment on a board or one of its blocks."""

    __tablename__ = "board_comments"  # pyright: ignore[reportAssignmentType]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    board_id: UUID = Field(foreign_key="boards.id", index=True)
    block_id: str | None = Field(default=None, index=True)
    user_id: UUID = Field(foreign_key="users.id", index=True)
    parent_id: UUID | None = Field(default=None, foreign_key="board_comments.id")
    content: str
    mentions: list[str] = Field(default_factory=list, sa_column=Column(JSON))
    resolved: bool = Field(default=False)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
