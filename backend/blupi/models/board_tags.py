"""Board-scoped tag labels."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import UniqueConstraint
from sqlmodel import Field

from blupi.core.time import utcnow
from blupi.models.base import QueryModel

RUNTIME_ANNOTATION_TYPES = (datetime,)


class BoardTag(QueryModel, table=True):
    """Named, colored label attached to a board."""

    __tablename__ = "board_tags"  # pyright: ignore[reportAssignmentType]
    __table_args__ = (UniqueConstraint("board_id", "name", name="uq_board_tags_board_name"),)

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    board_id: UUID = Field(foreign_key="boards.id", index=True)
    name: str
    color: str = Field(default="#6B7280")
    created_at: datetime = Field(default_factory=utcnow)
