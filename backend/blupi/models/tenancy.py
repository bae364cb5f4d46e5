"""Base class for rows owned by a single organization (tenant)."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlmodel import col

from blupi.models.base import QueryModel

if TYPE_CHECKING:
    from uuid import UUID

    from blupi.db.queryset import QuerySet


class TenantScoped(QueryModel, table=False):
    """Models whose rows carry an `organization_id` tenant key.

    Subclasses declare the `organization_id` column themselves; `scoped()` is
    the entry point the tenant repository uses to build filtered queries.
    """

    @classmethod
    def scoped(cls, organization_id: UUID) -> QuerySet[Any]:
        """Return a queryset restricted to one organization."""
        return cls.objects.filter(col(getattr(cls, "organization_id")) == organization_id)
