"""In-app notification records delivered to a single user."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column
from sqlmodel import Field

from blupi.core.time import utcnow
from blupi.models.base import QueryModel

RUNTIME_ANNOTATION_TYPES = (datetime,)


class Notification(QueryModel, table=True):
    """Notification addressed to `to_user_id` with independent read state."""

    __tablename__ = "notifications"  # pyright: ignore[reportAssignmentType]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    organization_id: UUID | None = Field(default=None, foreign_key="organizations.id", index=True)
    to_user_id: UUID = Field(foreign_key="users.id", index=True)
    from_user_id: UUID | None = Field(default=None, foreign_key="users.id")
    type: str = Field(index=True)
    title: str
    message: str
    meta: dict[str, object] | None = Field(default=None, sa_column=Column(JSON))
    read: bool = Field(default=False, index=True)
    read_at: datetime | None = None
    created_at: datetime = Field(default_factory=utcnow)
