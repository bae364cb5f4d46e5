"""Schemas for board create/update/read API operations."""

from __future__ import annotations

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import Field
from sqlmodel import SQLModel

from blupi.schemas.board_content import Block, Phase
from blupi.schemas.common import NonEmptyStr
from blupi.schemas.projects import WorkStatus

RUNTIME_ANNOTATION_TYPES = (datetime, UUID, NonEmptyStr, Block, Phase)
PublicRole = Literal["viewer", "editor"]


class BoardCreate(SQLModel):
    """Payload for creating a board, optionally seeded with content."""

    name: NonEmptyStr
    description: str | None = None
    segments: str | None = None
    status: WorkStatus = "draft"
    project_id: UUID | None = None
    phases: list[Phase] = Field(default_factory=list)
    blocks: list[Block] = Field(default_factory=list)


class BoardUpdate(SQLModel):
    """Partial board update.

    `phases` / `blocks` replace the stored document wholesale. When
    `expected_version` is given and does not match the stored
    `content_version`, the update is rejected with HTTP 409.
    """

    name: NonEmptyStr | None = None
    description: str | None = None
    segments: str | None = None
    status: WorkStatus | None = None
    project_id: UUID | None = None
    phases: list[Phase] | None = None
    blocks: list[Block] | None = None
    expected_version: int | None = Field(default=None, ge=1)


class BoardRead(SQLModel):
    """Board payload with placement indices derived from the current structure."""

    id: UUID
    organization_id: UUID
    project_id: UUID | None = None
    created_by_user_id: UUID | None = None
    name: str
    description: str | None = None
    segments: str | None = None
    status: str
    phases: list[Phase]
    blocks: list[Block]
    content_version: int
    is_public: bool
    public_role: str
    created_at: datetime
    updated_at: datetime


class BoardDuplicate(SQLModel):
    """Payload for copying a board's content into a new board."""

    name: NonEmptyStr | None = None
    project_id: UUID | None = None


class BoardPublicUpdate(SQLModel):
    """Payload toggling unauthenticated read access to a board."""

    is_public: bool
    public_role: PublicRole | None = None


class BoardPublicRead(SQLModel):
    """Read-only board view served without authentication."""

    id: UUID
    name: str
    description: str | None = None
    status: str
    phases: list[Phase]
    blocks: list[Block]
    public_role: str
    updated_at: datetime
