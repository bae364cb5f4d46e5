"""Project model grouping boards inside an organization."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlmodel import Field

from blupi.core.time import utcnow
from blupi.models.tenancy import TenantScoped

RUNTIME_ANNOTATION_TYPES = (datetime,)


class Project(TenantScoped, table=True):
    """Named grouping of boards with color and status metadata."""

    __tablename__ = "projects"  # pyright: ignore[reportAssignmentType]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    organization_id: UUID = Field(foreign_key="organizations.id", index=True)
    name: str
    description: str | None = None
    color: str = Field(default="#4F46E5")
    status: str = Field(default="draft", index=True)
    created_by_user_id: UUID | None = Field(default=None, foreign_key="users.id")
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
