"""Schemas for project CRUD and project membership payloads."""

from __future__ import annotations

from datetime import datetime
from typing import Literal
from uuid import UUID

from sqlmodel import SQLModel

from blupi.schemas.common import HexColor, NonEmptyStr

RUNTIME_ANNOTATION_TYPES = (datetime, UUID, NonEmptyStr, HexColor)
WorkStatus = Literal["draft", "in-progress", "review", "complete"]
ProjectRole = Literal["viewer", "editor", "admin"]
ProjectMemberStatus = Literal["pending", "active"]
DEFAULT_PROJECT_COLOR = "#4F46E5"


class ProjectBase(SQLModel):
    """Shared project fields used across create and read payloads."""

    name: NonEmptyStr
    description: str | None = None
    color: HexColor = DEFAULT_PROJECT_COLOR
    status: WorkStatus = "draft"


class ProjectCreate(ProjectBase):
    """Payload for creating a project in the active organization."""


class ProjectUpdate(SQLModel):
    """Payload for partial project updates."""

    name: NonEmptyStr | None = None
    description: str | None = None
    color: HexColor | None = None
    status: WorkStatus | None = None


class ProjectRead(ProjectBase):
    """Project payload returned from read endpoints."""

    id: UUID
    organization_id: UUID
    created_by_user_id: UUID | None = None
    board_count: int = 0
    created_at: datetime
    updated_at: datetime


class ProjectInvite(SQLModel):
    """Payload for inviting an organization member onto a project."""

    email: NonEmptyStr
    role: ProjectRole = "viewer"


class ProjectMemberUpdate(SQLModel):
    """Payload for changing a project member's role or status."""

    role: ProjectRole | None = None
    status: ProjectMemberStatus | None = None


class ProjectMemberRead(SQLModel):
    """Project member payload."""

    id: UUID
    project_id: UUID
    user_id: UUID
    role: str
    status: str
    invited_by_user_id: UUID | None = None
    email: str | None = None
    name: str | None = None
    created_at: datetime
    updated_at: datetime
