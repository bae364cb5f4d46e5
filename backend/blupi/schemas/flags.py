"""Schemas for flagged-block payloads."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlmodel import SQLModel

RUNTIME_ANNOTATION_TYPES = (datetime, UUID)


class BlockFlagCreate(SQLModel):
    """Optional reason recorded when flagging a block."""

    reason: str | None = None


class FlaggedBlockRead(SQLModel):
    """Flagged block payload."""

    id: UUID
    board_id: UUID
    block_id: str
    flagged_by_user_id: UUID
    reason: str | None = None
    created_at: datetime
