"""Pending organization invitations addressed by email."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlmodel import Field

from blupi.core.time import utcnow
from blupi.models.tenancy import TenantScoped

RUNTIME_ANNOTATION_TYPES = (datetime,)


class OrganizationInvite(TenantScoped, table=True):
    """Invitation token granting membership once accepted."""

    __tablename__ = "organization_invites"  # pyright: ignore[reportAssignmentType]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    organization_id: UUID = Field(foreign_key="organizations.id", index=True)
    invited_email: str = Field(index=True)
    token: str = Field(index=True, unique=True)
    role: str = Field(default="member")
    expires_at: datetime | None = None
    created_by_user_id: UUID | None = Field(default=None, foreign_key="users.id")
    accepted_by_user_id: UUID | None = Field(default=None, foreign_key="users.id")
    accepted_at: datetime | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
