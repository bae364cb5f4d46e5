"""Chainable, immutable select-statement wrapper used by model managers."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from sqlalchemy import func
from sqlmodel import select

if TYPE_CHECKING:
    from sqlmodel.ext.asyncio.session import AsyncSession
    from sqlmodel.sql.expression import SelectOfScalar

ModelT = TypeVar("ModelT")


@dataclass(frozen=True)
class QuerySet(Generic[ModelT]):
    """Immutable wrapper around a `SelectOfScalar` statement."""

    statement: SelectOfScalar[ModelT]

    def filter(self, *criteria: Any) -> QuerySet[ModelT]:
        return replace(self, statement=self.statement.where(*criteria))

    def filter_by(self, **kwargs: Any) -> QuerySet[ModelT]:
        return replace(self, statement=self.statement.filter_by(**kwargs))

    def order_by(self, *ordering: Any) -> QuerySet[ModelT]:
        return replace(self, statement=self.statement.order_by(*ordering))

    def limit(self, value: int) -> QuerySet[ModelT]:
        return replace(self, statement=self.statement.limit(value))

    def offset(self, value: int) -> QuerySet[ModelT]:
        return replace(self, statement=self.statement.offset(value))

    def for_update(self) -> QuerySet[ModelT]:
        """Lock matched rows and reload them over any identity-map copies."""
        return replace(
            self,
            statement=self.statement.with_for_update().execution_options(
                populate_existing=True,
            ),
        )

    async def all(self, session: AsyncSession) -> list[ModelT]:
        return list(await session.exec(self.statement))

    async def first(self, session: AsyncSession) -> ModelT | None:
        return (await session.exec(self.statement)).first()

    async def exists(self, session: AsyncSession) -> bool:
        return await self.limit(1).first(session) is not None

    async def count(self, session: AsyncSession) -> int:
        subquery = self.statement.order_by(None).subquery()
        result = await session.exec(select(func.count()).select_from(subquery))
        return int(result.one())


def qs(model: type[ModelT]) -> QuerySet[ModelT]:
    """Start a queryset selecting all rows of a model."""
    return QuerySet(select(model))
