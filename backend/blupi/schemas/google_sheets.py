"""Schemas for Google Sheets lookups and board sheet documents."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlmodel import SQLModel

from blupi.schemas.common import NonEmptyStr

RUNTIME_ANNOTATION_TYPES = (datetime, UUID, NonEmptyStr)


class SheetValidateRequest(SQLModel):
    """Spreadsheet URL (or bare id) to validate."""

    url: NonEmptyStr


class SheetValidateResponse(SQLModel):
    """Validation result with the extracted spreadsheet id."""

    valid: bool
    sheet_id: str | None = None
    title: str | None = None


class SheetDataRequest(SQLModel):
    """Range lookup against a spreadsheet."""

    sheet_id: NonEmptyStr
    range: str = "A1:Z1000"


class SheetDataResponse(SQLModel):
    """Cell values for a range plus a CSV rendering for the import flow."""

    sheet_id: str
    range: str
    values: list[list[str]]
    csv: str


class SheetDocumentCreate(SQLModel):
    """Payload linking a spreadsheet to a board."""

    url: NonEmptyStr
    name: NonEmptyStr | None = None


class SheetDocumentRead(SQLModel):
    """Board sheet document payload."""

    id: UUID
    board_id: UUID
    sheet_id: str
    name: str
    url: str
    created_by_user_id: UUID | None = None
    created_at: datetime
