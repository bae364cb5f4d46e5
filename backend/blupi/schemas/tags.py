"""Schemas for board tag payloads."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlmodel import SQLModel

from blupi.schemas.common import HexColor, NonEmptyStr

RUNTIME_ANNOTATION_TYPES = (datetime, UUID, NonEmptyStr, HexColor)


class BoardTagCreate(SQLModel):
    """Payload for adding a tag to a board."""

    name: NonEmptyStr
    color: HexColor = "#6B7280"


class BoardTagRead(SQLModel):
    """Board tag payload."""

    id: UUID
    board_id: UUID
    name: str
    color: str
    created_at: datetime
