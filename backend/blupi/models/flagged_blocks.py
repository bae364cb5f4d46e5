"""Blocks flagged for follow-up on a board."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import UniqueConstraint
from sqlmodel import Field

from blupi.core.time import utcnow
from blupi.models.base import QueryModel

RUNTIME_ANNOTATION_TYPES = (datetime,)


class FlaggedBlock(QueryModel, table=True):
    """Flag marker for one block on a board."""

    __tablename__ = "flagged_blocks"  # pyright: ignore[reportAssignmentType]
    __table_args__ = (
        UniqueConstraint("board_id", "block_id", name="uq_flagged_blocks_board_block"),
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    board_id: UUID = Field(foreign_key="boards.id", index=True)
    block_id: str = Field(index=True)
    flagged_by_user_id: UUID = Field(foreign_key="users.id")
    reason: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
