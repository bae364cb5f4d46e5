"""Board model storing blueprint content as JSON documents."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column
from sqlmodel import Field

from blupi.core.time import utcnow
from blupi.models.tenancy import TenantScoped

RUNTIME_ANNOTATION_TYPES = (datetime,)


class Board(TenantScoped, table=True):
    """Blueprint board; `phases` and `blocks` hold the content document."""

    __tablename__ = "boards"  # pyright: ignore[reportAssignmentType]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    organization_id: UUID = Field(foreign_key="organizations.id", index=True)
    project_id: UUID | None = Field(default=None, foreign_key="projects.id", index=True)
    created_by_user_id: UUID | None = Field(default=None, foreign_key="users.id", index=True)
    name: str
    description: str | None = None
    segments: str | None = None
    status: str = Field(default="draft", index=True)
    phases: list[dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON))
    blocks: list[dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON))
    content_version: int = Field(default=1)
    is_public: bool = Field(default=False, index=True)
    public_role: str = Field(default="viewer")
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
