"""Model manager descriptor exposing `Model.objects` query entry points."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from sqlmodel import col

from blupi.db.queryset import QuerySet, qs

if TYPE_CHECKING:
    from collections.abc import Iterable

ModelT = TypeVar("ModelT")


@dataclass(frozen=True)
class ModelManager(Generic[ModelT]):
    """Convenience constructors for common model querysets."""

    model: type[ModelT]
    id_field: str = "id"

    def all(self) -> QuerySet[ModelT]:
        return qs(self.model)

    def filter(self, *criteria: Any) -> QuerySet[ModelT]:
        return self.all().filter(*criteria)

    def filter_by(self, **kwargs: Any) -> QuerySet[ModelT]:
        return self.all().filter_by(**kwargs)

    def by_field(self, field_name: str, value: Any) -> QuerySet[ModelT]:
        return self.filter(col(getattr(self.model, field_name)) == value)

    def by_id(self, obj_id: Any) -> QuerySet[ModelT]:
        return self.by_field(self.id_field, obj_id)

    def by_ids(self, obj_ids: Iterable[Any]) -> QuerySet[ModelT]:
        return self.filter(col(getattr(self.model, self.id_field)).in_(list(obj_ids)))


class ManagerDescriptor(Generic[ModelT]):
    """Descriptor returning a fresh `ModelManager` bound to the owner class."""

    def __get__(self, instance: object, owner: type[ModelT]) -> ModelManager[ModelT]:
        return ModelManager(owner)
