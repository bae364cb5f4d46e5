"""Limit/offset pagination over SQLModel select statements."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from fastapi_pagination.ext.sqlalchemy import apaginate

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from fastapi_pagination.limit_offset import LimitOffsetPage
    from sqlmodel.ext.asyncio.session import AsyncSession


async def paginate(
    session: AsyncSession,
    statement: Any,
    *,
    transformer: Callable[[Sequence[Any]], Sequence[Any]] | None = None,
) -> LimitOffsetPage[Any]:
    """Paginate a select statement using request-bound limit/offset params."""
    return await apaginate(session, statement, transformer=transformer)
