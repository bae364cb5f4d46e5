# ruff: noqa

from __future__ import annotations

import httpx
import pytest
from fastapi import FastAPI, HTTPException
from fastapi.testclient import TestClient
from pydantic import BaseModel
from starlette.requests import Request

from blupi.core import error_handling
from blupi.core.error_handling import REQUEST_ID_HEADER, _get_request_id, install_error_handling
from blupi.core.errors import (
    BoardContentError,
    FeatureDisabledError,
    ImportFormatError,
    IntegrationError,
)


class Payload(BaseModel):
    name: str


def _app() -> FastAPI:
    app = FastAPI()
    install_error_handling(app)
    return app


def test_validation_error_returns_400_with_message_and_request_id():
    app = _app()

    @app.post("/boards")
    def create(payload: Payload) -> dict[str, str]:
        return {"name": payload.name}

    resp = TestClient(app).post("/boards", json={})

    assert resp.status_code == 400
    body = resp.json()
    assert isinstance(body["detail"], list)
    assert body["message"].startswith("name:")
    assert body["request_id"]
    assert resp.headers.get(REQUEST_ID_HEADER) == body["request_id"]


def test_http_exception_message_mirrors_string_detail():
    app = _app()

    @app.get("/missing")
    def missing() -> None:
        raise HTTPException(status_code=404, detail="Block not found")

    resp = TestClient(app).get("/missing")

    assert resp.status_code == 404
    assert resp.json()["detail"] == "Block not found"
    assert resp.json()["message"] == "Block not found"


def test_http_exception_with_dict_detail_uses_embedded_message():
    app = _app()

    @app.get("/conflict")
    def conflict() -> None:
        raise HTTPException(
            status_code=409,
            detail={"message": "Board was modified by someone else.", "current_version": 4},
        )

    resp = TestClient(app).get("/conflict")

    assert resp.status_code == 409
    body = resp.json()
    assert body["message"] == "Board was modified by someone else."
    assert body["detail"]["current_version"] == 4


def test_http_exception_without_detail_falls_back_to_status_phrase():
    app = _app()

    @app.get("/forbidden")
    def forbidden() -> None:
        raise HTTPException(status_code=403)

    resp = TestClient(app).get("/forbidden")

    assert resp.status_code == 403
    assert resp.json()["message"] == "Forbidden"


@pytest.mark.parametrize(
    ("exc", "status_code"),
    [
        (BoardContentError("Duplicate block id 'b1'."), 400),
        (ImportFormatError(), 400),
        (FeatureDisabledError("google_sheets_integration"), 503),
    ],
)
def test_domain_errors_map_to_status_codes(exc: Exception, status_code: int):
    app = _app()

    @app.get("/fail")
    def fail() -> None:
        raise exc

    resp = TestClient(app).get("/fail")

    assert resp.status_code == status_code
    assert resp.json()["message"] == str(exc)


def test_integration_error_hides_upstream_details():
    app = _app()

    @app.get("/sheets")
    def sheets() -> None:
        try:
            raise httpx.ConnectError("secret-host.internal refused")
        except httpx.ConnectError as exc:
            raise IntegrationError("google_sheets") from exc

    resp = TestClient(app).get("/sheets")

    assert resp.status_code == 502
    body = resp.json()
    assert "secret-host" not in body["message"]
    assert body["message"] == IntegrationError.default_message


def test_unhandled_exception_returns_generic_500():
    app = _app()

    @app.get("/boom")
    def boom() -> None:
        raise RuntimeError("database password is hunter2")

    resp = TestClient(app, raise_server_exceptions=False).get("/boom")

    assert resp.status_code == 500
    body = resp.json()
    assert body == {
        "detail": "Internal Server Error",
        "message": "Internal Server Error",
        "request_id": body["request_id"],
    }


def test_client_provided_request_id_is_trimmed_and_preserved():
    app = _app()

    @app.get("/ok")
    def ok() -> dict[str, bool]:
        return {"ok": True}

    resp = TestClient(app).get("/ok", headers={REQUEST_ID_HEADER: "  req-123  "})

    assert resp.status_code == 200
    assert resp.headers.get(REQUEST_ID_HEADER) == "req-123"


def test_slow_request_emits_slow_log(monkeypatch: pytest.MonkeyPatch) -> None:
    warnings: list[tuple[str, dict[str, object]]] = []

    def _fake_warning(message: str, *args: object, **kwargs: object) -> None:
        extra = kwargs.get("extra")
        warnings.append((message, extra if isinstance(extra, dict) else {}))

    perf_ticks = iter((100.0, 100.2))
    monkeypatch.setattr(error_handling.settings, "request_log_slow_ms", 1)
    monkeypatch.setattr(error_handling, "perf_counter", lambda: next(perf_ticks))
    monkeypatch.setattr(error_handling.logger, "warning", _fake_warning)

    app = _app()

    @app.get("/slow")
    def slow() -> dict[str, str]:
        return {"ok": "1"}

    assert TestClient(app).get("/slow").status_code == 200
    assert any(
        message == "http.request.slow" and extra.get("slow_threshold_ms") == 1
        for message, extra in warnings
    )


def test_get_request_id_ignores_missing_or_non_string_state() -> None:
    assert _get_request_id(Request({"type": "http", "headers": [], "state": {}})) is None
    assert (
        _get_request_id(Request({"type": "http", "headers": [], "state": {"request_id": 7}}))
        is None
    )
