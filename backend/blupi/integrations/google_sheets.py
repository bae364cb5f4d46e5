"""Google Sheets REST adapter (API-key access to shared spreadsheets)."""

from __future__ import annotations

import csv
import io
import re
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import httpx

from blupi.core.config import settings
from blupi.core.errors import FeatureDisabledError, IntegrationError
from blupi.core.logging import get_logger
from blupi.core.time import utcnow

PROVIDER = "google_sheets"
FEATURE = "google_sheets_integration"
DEFAULT_RANGE = "A1:Z1000"
_URL_PATTERN = re.compile(r"docs\.google\.com/spreadsheets/d/([a-zA-Z0-9_-]+)")
_BARE_ID = re.compile(r"^[a-zA-Z0-9_-]+$")

logger = get_logger(__name__)


@dataclass(frozen=True)
class SheetCell:
    """A single-cell (or small range) lookup result."""

    value: str | None
    formatted_value: str | None
    values: list[list[str]]
    fetched_at: str


def parse_sheet_id(url: str) -> str | None:
    """Extract a spreadsheet id from a docs.google.com URL or accept a bare id."""
    candidate = url.strip()
    match = _URL_PATTERN.search(candidate)
    if match:
        return match.group(1)
    if _BARE_ID.match(candidate):
        return candidate
    return None


def qualified_range(cell_range: str, sheet_name: str | None = None) -> str:
    """Prefix a range with a quoted sheet name (`'My Sheet'!A1:B2`)."""
    cell_range = cell_range.strip() or DEFAULT_RANGE
    if not sheet_name or not sheet_name.strip():
        return cell_range
    escaped = sheet_name.strip().replace("'", "''")
    return f"'{escaped}'!{cell_range}"


def values_to_csv(values: list[list[str]]) -> str:
    """Render sheet values as CSV text for the import pipeline."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    width = max((len(row) for row in values), default=0)
    for row in values:
        writer.writerow([*row, *[""] * (width - len(row))])
    return buffer.getvalue()


def _api_key() -> str:
    key = settings.google_api_key.strip()
    if not key:
        raise FeatureDisabledError(FEATURE)
    return key


async def _get_json(
    path: str,
    params: dict[str, str],
    *,
    client: httpx.AsyncClient | None = None,
) -> dict[str, Any]:
    url = f"{settings.google_sheets_api_url.rstrip('/')}/{path}"
    query = {**params, "key": _api_key()}
    try:
        if client is None:
            async with httpx.AsyncClient(timeout=settings.integration_timeout_seconds) as owned:
                response = await owned.get(url, params=query)
        else:
            response = await client.get(url, params=query)
        response.raise_for_status()
        payload = response.json()
    except httpx.HTTPStatusError as exc:
        logger.warning(
            "integration.google_sheets.http_error status=%s path=%s",
            exc.response.status_code,
            path,
        )
        raise IntegrationError(PROVIDER) from exc
    except (httpx.HTTPError, ValueError) as exc:
        logger.warning("integration.google_sheets.request_failed path=%s error=%s", path, exc)
        raise IntegrationError(PROVIDER) from exc
    if not isinstance(payload, dict):
        raise IntegrationError(PROVIDER)
    return payload


def _normalize_values(raw: object) -> list[list[str]]:
    if not isinstance(raw, list):
        return []
    return [
        ["" if cell is None else str(cell) for cell in row]
        for row in raw
        if isinstance(row, list)
    ]


async def fetch_sheet_title(
    sheet_id: str,
    *,
    client: httpx.AsyncClient | None = None,
) -> str | None:
    payload = await _get_json(quote(sheet_id), {"fields": "properties.title"}, client=client)
    properties = payload.get("properties")
    if isinstance(properties, dict) and isinstance(properties.get("title"), str):
        return properties["title"]
    return None


async def fetch_sheet_values(
    sheet_id: str,
    cell_range: str = DEFAULT_RANGE,
    *,
    sheet_name: str | None = None,
    client: httpx.AsyncClient | None = None,
) -> list[list[str]]:
    """Fetch formatted cell values for a range."""
    target = qualified_range(cell_range, sheet_name)
    payload = await _get_json(
        f"{quote(sheet_id)}/values/{quote(target, safe='')}",
        {"valueRenderOption": "FORMATTED_VALUE"},
        client=client,
    )
    values = _normalize_values(payload.get("values"))
    logger.info("integration.google_sheets.fetched sheet_id=%s rows=%s", sheet_id, len(values))
    return values


async def fetch_sheet_cell(
    sheet_id: str,
    cell_range: str,
    *,
    sheet_name: str | None = None,
    client: httpx.AsyncClient | None = None,
) -> SheetCell:
    """Fetch one cell (or the top-left cell of a range) for a metrics block."""
    values = await fetch_sheet_values(
        sheet_id,
        cell_range,
        sheet_name=sheet_name,
        client=client,
    )
    first = values[0][0] if values and values[0] else None
    return SheetCell(
        value=first,
        formatted_value=first,
        values=values,
        fetched_at=utcnow().isoformat(),
    )
