"""Async HTTP client for board endpoints with optimistic cache updates."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import httpx

from blupi.client.optimistic import OptimisticMutation, QueryCache
from blupi.core.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable
    from uuid import UUID

logger = get_logger(__name__)


class BlueprintApiError(Exception):
    """Non-2xx API response, carrying the server's `message` text."""

    def __init__(self, status_code: int, message: str, payload: Any = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.payload = payload


def board_key(board_id: UUID | str) -> tuple[str, str]:
    return ("board", str(board_id))


def _with_blocks(board: dict[str, Any] | None, blocks: list[dict[str, Any]]) -> dict[str, Any]:
    return {**(board or {}), "blocks": blocks}


class BlueprintApiClient:
    """Board operations against `/api`, cached per board."""

    def __init__(
        self,
        base_url: str,
        *,
        token: str,
        cache: QueryCache | None = None,
        on_error: Callable[[Exception], None] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 10.0,
    ) -> None:
        self.cache = cache or QueryCache()
        self.mutation: OptimisticMutation[dict[str, Any]] = OptimisticMutation(
            self.cache,
            on_error=on_error,
        )
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers={"Authorization": f"Bearer {token}"},
            transport=transport,
            timeout=timeout,
        )

    async def __aenter__(self) -> BlueprintApiClient:
        return self

    async def __aexit__(self, *_exc: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        response = await self._client.request(method, f"/api{path}", **kwargs)
        if response.is_error:
            try:
                payload = response.json()
            except ValueError:
                payload = None
            message = (
                payload.get("message")
                if isinstance(payload, dict) and isinstance(payload.get("message"), str)
                else response.reason_phrase
            )
            logger.info(
                "client.request.failed method=%s path=%s status=%s",
                method,
                path,
                response.status_code,
            )
            raise BlueprintApiError(response.status_code, message, payload)
        body = response.json()
        return body if isinstance(body, dict) else {"items": body}

    def cached_board(self, board_id: UUID | str) -> dict[str, Any] | None:
        return self.cache.get(board_key(board_id))

    async def get_board(self, board_id: UUID | str) -> dict[str, Any]:
        """Fetch the canonical board and replace the cached entry."""
        board = await self._request("GET", f"/boards/{board_id}")
        self.cache.set(board_key(board_id), board)
        return board

    async def save_board_content(
        self,
        board_id: UUID | str,
        *,
        phases: list[dict[str, Any]],
        blocks: list[dict[str, Any]],
        expected_version: int | None = None,
    ) -> dict[str, Any]:
        """Replace the whole document; a stale `expected_version` fails with 409."""
        body: dict[str, Any] = {"phases": phases, "blocks": blocks}
        if expected_version is not None:
            body["expected_version"] = expected_version
        return await self.mutation.run(
            board_key(board_id),
            lambda board: {**(board or {}), "phases": phases, "blocks": blocks},
            lambda: self._request("PATCH", f"/boards/{board_id}", json=body),
        )

    async def add_block(self, board_id: UUID | str, block: dict[str, Any]) -> dict[str, Any]:
        return await self.mutation.run(
            board_key(board_id),
            lambda board: _with_blocks(board, [*(board or {}).get("blocks", []), block]),
            lambda: self._request("POST", f"/boards/{board_id}/blocks", json=block),
        )

    async def update_block(
        self,
        board_id: UUID | str,
        block_id: str,
        patch: dict[str, Any],
    ) -> dict[str, Any]:
        def apply(board: dict[str, Any] | None) -> dict[str, Any]:
            blocks = [
                {**block, **patch} if block.get("id") == block_id else block
                for block in (board or {}).get("blocks", [])
            ]
            return _with_blocks(board, blocks)

        return await self.mutation.run(
            board_key(board_id),
            apply,
            lambda: self._request("PATCH", f"/boards/{board_id}/blocks/{block_id}", json=patch),
        )

    async def remove_block(self, board_id: UUID | str, block_id: str) -> dict[str, Any]:
        return await self.mutation.run(
            board_key(board_id),
            lambda board: _with_blocks(
                board,
                [b for b in (board or {}).get("blocks", []) if b.get("id") != block_id],
            ),
            lambda: self._request("DELETE", f"/boards/{board_id}/blocks/{block_id}"),
        )
