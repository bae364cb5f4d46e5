"""Base SQLModel class exposing the `objects` query manager."""

from __future__ import annotations

from typing import Any, ClassVar

from sqlmodel import SQLModel

from blupi.db.query_manager import ManagerDescriptor


class QueryModel(SQLModel, table=False):
    """SQLModel base that adds `Model.objects` queryset helpers."""

    objects: ClassVar[ManagerDescriptor[Any]] = ManagerDescriptor()
