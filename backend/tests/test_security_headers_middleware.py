from __future__ import annotations

import pytest
from fastapi import FastAPI, Response
from fastapi.testclient import TestClient

from blupi.core.security_headers import SecurityHeadersMiddleware


def _app(**headers: str) -> FastAPI:
    app = FastAPI()
    app.add_middleware(SecurityHeadersMiddleware, **headers)

    @app.get("/api/boards")
    def boards() -> dict[str, list[str]]:
        return {"items": []}

    @app.get("/api/embed")
    def embed(response: Response) -> dict[str, bool]:
        response.headers["X-Frame-Options"] = "SAMEORIGIN"
        return {"ok": True}

    return app


def test_configured_headers_are_added_to_api_responses() -> None:
    app = _app(
        x_content_type_options="nosniff",
        x_frame_options="DENY",
        referrer_policy="strict-origin-when-cross-origin",
        permissions_policy="camera=()",
    )

    response = TestClient(app).get("/api/boards")

    assert response.status_code == 200
    assert response.headers["x-content-type-options"] == "nosniff"
    assert response.headers["x-frame-options"] == "DENY"
    assert response.headers["referrer-policy"] == "strict-origin-when-cross-origin"
    assert response.headers["permissions-policy"] == "camera=()"


def test_route_set_headers_win() -> None:
    response = TestClient(_app(x_frame_options="DENY")).get("/api/embed")

    assert response.headers["x-frame-options"] == "SAMEORIGIN"


def test_blank_values_disable_headers() -> None:
    response = TestClient(_app(x_frame_options="   ")).get("/api/boards")

    assert response.headers.get("x-frame-options") is None
    assert response.headers.get("x-content-type-options") is None


@pytest.mark.asyncio
async def test_websocket_scope_passes_through_untouched() -> None:
    seen: list[str] = []

    async def app(scope, receive, send):  # type: ignore[no-untyped-def]
        seen.append(scope["type"])

    middleware = SecurityHeadersMiddleware(app, x_frame_options="DENY")
    await middleware({"type": "websocket", "headers": []}, lambda: None, lambda _: None)

    assert seen == ["websocket"]
