"""Schemas for user profile reads and self-service updates."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlmodel import SQLModel

RUNTIME_ANNOTATION_TYPES = (datetime, UUID)


class UserRead(SQLModel):
    """User payload returned by profile endpoints."""

    id: UUID
    clerk_user_id: str
    email: str | None = None
    name: str | None = None
    preferred_name: str | None = None
    avatar_url: str | None = None
    active_organization_id: UUID | None = None
    created_at: datetime
    updated_at: datetime


class UserUpdate(SQLModel):
    """Partial update payload for the caller's profile."""

    name: str | None = None
    preferred_name: str | None = None
    avatar_url: str | None = None
