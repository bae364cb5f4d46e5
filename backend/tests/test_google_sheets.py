# ruff: noqa: INP001
"""Google Sheets adapter and lookup endpoints."""

from __future__ import annotations

import httpx
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from blupi.api.google_sheets import router as google_sheets_router
from blupi.core.auth import AuthContext, get_auth_context
from blupi.core.config import settings
from blupi.core.error_handling import install_error_handling
from blupi.core.errors import FeatureDisabledError, IntegrationError
from blupi.core.rate_limit import limiter
from blupi.integrations import google_sheets
from blupi.models.users import User

SHEET_ID = "1AbC_def-GHI"


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        (f"https://docs.google.com/spreadsheets/d/{SHEET_ID}/edit#gid=0", SHEET_ID),
        (f"  {SHEET_ID}  ", SHEET_ID),
        ("https://example.com/not-a-sheet", None),
        ("has spaces", None),
    ],
)
def test_parse_sheet_id(raw: str, expected: str | None) -> None:
    assert google_sheets.parse_sheet_id(raw) == expected


def test_qualified_range_quotes_sheet_names() -> None:
    assert google_sheets.qualified_range("B2") == "B2"
    assert google_sheets.qualified_range("", None) == google_sheets.DEFAULT_RANGE
    assert google_sheets.qualified_range("A1:C3", "Q1 Funnel") == "'Q1 Funnel'!A1:C3"
    assert google_sheets.qualified_range("A1", "Bob's") == "'Bob''s'!A1"


def test_values_to_csv_pads_ragged_rows() -> None:
    csv_text = google_sheets.values_to_csv([["Step", "Visitors"], ["1. Landing"], ["a,b", "2"]])

    assert csv_text == 'Step,Visitors\n1. Landing,\n"a,b",2\n'


@pytest.mark.asyncio
async def test_missing_api_key_disables_the_feature(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "google_api_key", "")

    with pytest.raises(FeatureDisabledError):
        await google_sheets.fetch_sheet_title(SHEET_ID)


@pytest.mark.asyncio
async def test_fetch_values_sends_key_and_formatted_render(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr(settings, "google_api_key", "test-key")
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"values": [["Visitors", 1000], ["Rate", None]]})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        values = await google_sheets.fetch_sheet_values(
            SHEET_ID,
            "A1:B2",
            sheet_name="Funnel",
            client=client,
        )

    assert values == [["Visitors", "1000"], ["Rate", ""]]
    assert seen[0].url.params["key"] == "test-key"
    assert seen[0].url.params["valueRenderOption"] == "FORMATTED_VALUE"
    assert "%27Funnel%27%21A1%3AB2" in str(seen[0].url)


@pytest.mark.asyncio
async def test_fetch_cell_returns_top_left_value(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "google_api_key", "test-key")
    transport = httpx.MockTransport(
        lambda _request: httpx.Response(200, json={"values": [["42%", "x"]]}),
    )

    async with httpx.AsyncClient(transport=transport) as client:
        cell = await google_sheets.fetch_sheet_cell(SHEET_ID, "C3", client=client)

    assert cell.value == "42%"
    assert cell.formatted_value == "42%"
    assert cell.fetched_at


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "handler",
    [
        lambda _request: httpx.Response(403, json={"error": {"message": "The caller does not have permission"}}),
        lambda _request: httpx.Response(200, content=b"<html>"),
        lambda _request: httpx.Response(200, json=["not", "an", "object"]),
    ],
)
async def test_upstream_failures_become_integration_errors(
    monkeypatch: pytest.MonkeyPatch,
    handler,
) -> None:
    monkeypatch.setattr(settings, "google_api_key", "test-key")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(IntegrationError) as exc_info:
            await google_sheets.fetch_sheet_title(SHEET_ID, client=client)

    assert exc_info.value.provider == google_sheets.PROVIDER
    assert "permission" not in exc_info.value.message


@pytest.mark.asyncio
async def test_transport_errors_become_integration_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "google_api_key", "test-key")

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(IntegrationError):
            await google_sheets.fetch_sheet_values(SHEET_ID, client=client)


def _build_test_app() -> FastAPI:
    app = FastAPI()
    app.state.limiter = limiter
    install_error_handling(app)
    app.include_router(google_sheets_router, prefix="/api")

    async def _override_auth() -> AuthContext:
        return AuthContext(actor_type="user", user=User(clerk_user_id="sheets-user"))

    app.dependency_overrides[get_auth_context] = _override_auth
    return app


def test_validate_endpoint_is_unavailable_without_key(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "google_api_key", "")

    response = TestClient(_build_test_app()).post(
        "/api/google-sheets/validate",
        json={"url": SHEET_ID},
    )

    assert response.status_code == 503
    assert "google_sheets_integration" in response.json()["message"]


def test_validate_endpoint_reports_title(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "google_api_key", "test-key")

    async def _fake_title(sheet_id: str, **_kwargs: object) -> str:
        assert sheet_id == SHEET_ID
        return "Q1 Funnel"

    monkeypatch.setattr(google_sheets, "fetch_sheet_title", _fake_title)
    client = TestClient(_build_test_app())

    valid = client.post(
        "/api/google-sheets/validate",
        json={"url": f"https://docs.google.com/spreadsheets/d/{SHEET_ID}/edit"},
    )
    assert valid.json() == {"valid": True, "sheet_id": SHEET_ID, "title": "Q1 Funnel"}

    invalid = client.post("/api/google-sheets/validate", json={"url": "not a sheet"})
    assert invalid.status_code == 200
    assert invalid.json()["valid"] is False


def test_data_endpoint_maps_upstream_failure_to_502(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "google_api_key", "test-key")

    async def _failing_values(*_args: object, **_kwargs: object) -> list[list[str]]:
        raise IntegrationError(google_sheets.PROVIDER)

    monkeypatch.setattr(google_sheets, "fetch_sheet_values", _failing_values)

    response = TestClient(_build_test_app()).post(
        "/api/google-sheets/data",
        json={"sheet_id": SHEET_ID},
    )

    assert response.status_code == 502
    assert response.json()["message"] == IntegrationError.default_message
