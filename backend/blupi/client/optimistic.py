"""Optimistic updates over a keyed query cache."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Generic, TypeVar

from blupi.core.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Hashable

T = TypeVar("T")
_MISSING = object()

logger = get_logger(__name__)


class QueryCache:
    """Last known value per query key."""

    def __init__(self) -> None:
        self._entries: dict[Hashable, Any] = {}

    def __contains__(self, key: Hashable) -> bool:
        return key in self._entries

    def get(self, key: Hashable, default: Any = None) -> Any:
        return self._entries.get(key, default)

    def set(self, key: Hashable, value: Any) -> None:
        self._entries[key] = value

    def invalidate(self, key: Hashable) -> None:
        self._entries.pop(key, None)


class OptimisticMutation(Generic[T]):
    """Apply a tentative value, then keep the server's answer or roll back.

    There is no retry: a failed request restores the previous cache entry,
    reports through `on_error`, and re-raises.
    """

    def __init__(
        self,
        cache: QueryCache,
        *,
        on_error: Callable[[Exception], None] | None = None,
    ) -> None:
        self.cache = cache
        self.on_error = on_error

    async def run(
        self,
        key: Hashable,
        apply: Callable[[T | None], T],
        request: Callable[[], Awaitable[T]],
    ) -> T:
        previous = self.cache.get(key, _MISSING)
        self.cache.set(key, apply(None if previous is _MISSING else previous))
        try:
            result = await request()
        except Exception as exc:
            if previous is _MISSING:
                self.cache.invalidate(key)
            else:
                self.cache.set(key, previous)
            logger.warning("client.mutation.rolled_back key=%s error=%s", key, exc)
            if self.on_error is not None:
                self.on_error(exc)
            raise
        self.cache.set(key, result)
        return result
