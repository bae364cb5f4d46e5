"""Schemas for organization, membership, and invite API payloads."""

from __future__ import annotations

from datetime import datetime
from typing import Literal
from uuid import UUID

from sqlmodel import Field, SQLModel

from blupi.schemas.common import HexColor, NonEmptyStr

RUNTIME_ANNOTATION_TYPES = (datetime, UUID, NonEmptyStr, HexColor)
OrganizationRole = Literal["owner", "admin", "member"]


class OrganizationSettings(SQLModel):
    """Organization-level presentation and sharing settings."""

    logo_url: str | None = None
    primary_color: HexColor | None = None
    allow_public_boards: bool = True


class OrganizationRead(SQLModel):
    """Organization payload returned by read endpoints."""

    id: UUID
    name: str
    slug: str
    settings: OrganizationSettings | None = None
    created_at: datetime
    updated_at: datetime


class OrganizationCreate(SQLModel):
    """Payload for creating a new organization."""

    name: NonEmptyStr


class OrganizationUpdate(SQLModel):
    """Admin payload for renaming an organization or changing settings."""

    name: NonEmptyStr | None = None
    settings: OrganizationSettings | None = None


class OrganizationListItem(SQLModel):
    """Organization list row for current user memberships."""

    id: UUID
    name: str
    slug: str
    role: str
    is_active: bool


class OrganizationUserRead(SQLModel):
    """Embedded user fields included in organization member payloads."""

    id: UUID
    email: str | None = None
    name: str | None = None
    preferred_name: str | None = None
    avatar_url: str | None = None


class OrganizationMemberRead(SQLModel):
    """Organization member payload including the embedded user."""

    id: UUID
    organization_id: UUID
    user_id: UUID
    role: str
    created_at: datetime
    updated_at: datetime
    user: OrganizationUserRead | None = None


class OrganizationMemberUpdate(SQLModel):
    """Payload for changing a member's organization role."""

    role: OrganizationRole


class OrganizationInviteCreate(SQLModel):
    """Payload for inviting an email address into the active organization."""

    invited_email: NonEmptyStr
    role: OrganizationRole = "member"


class OrganizationInviteRead(SQLModel):
    """Organization invite payload."""

    id: UUID
    organization_id: UUID
    invited_email: str
    role: str
    token: str
    expires_at: datetime | None = None
    created_by_user_id: UUID | None = None
    accepted_by_user_id: UUID | None = None
    accepted_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class OrganizationInviteAccept(SQLModel):
    """Payload for accepting an organization invite token."""

    token: str = Field(min_length=1)
