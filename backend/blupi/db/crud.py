"""Small async CRUD helpers shared by services and routes."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, TypeVar

from sqlalchemy import delete as sql_delete
from sqlalchemy.exc import IntegrityError
from sqlmodel import SQLModel, col

if TYPE_CHECKING:
    from collections.abc import Mapping

    from sqlmodel.ext.asyncio.session import AsyncSession

ModelT = TypeVar("ModelT", bound=SQLModel)


async def save(session: AsyncSession, obj: ModelT, *, commit: bool = True) -> ModelT:
    """Add an object, then commit and refresh unless `commit=False`."""
    session.add(obj)
    if commit:
        await session.commit()
        await session.refresh(obj)
    else:
        await session.flush()
    return obj


async def delete(session: AsyncSession, obj: SQLModel, *, commit: bool = True) -> None:
    """Delete an object and optionally commit."""
    await session.delete(obj)
    if commit:
        await session.commit()


async def delete_where(
    session: AsyncSession,
    model: type[SQLModel],
    *criteria: Any,
    commit: bool = True,
) -> None:
    """Bulk-delete rows matching the criteria."""
    await session.execute(sql_delete(model).where(*criteria))
    if commit:
        await session.commit()


async def get_or_create(
    session: AsyncSession,
    model: type[ModelT],
    *,
    defaults: Mapping[str, Any] | None = None,
    **lookup: Any,
) -> tuple[ModelT, bool]:
    """Return `(obj, created)` for the row matching `lookup`, creating it if absent."""
    statement = model.objects.filter(  # type: ignore[attr-defined]
        *(col(getattr(model, key)) == value for key, value in lookup.items()),
    )
    existing = await statement.first(session)
    if existing is not None:
        return existing, False
    obj = model(**lookup, **dict(defaults or {}))
    session.add(obj)
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        existing = await statement.first(session)
        if existing is None:
            raise
        return existing, False
    await session.refresh(obj)
    return obj, True
