"""Schemas for CSV and PDF import requests and results."""

from __future__ import annotations

from typing import Literal
from uuid import UUID

from sqlmodel import SQLModel

from blupi.schemas.boards import BoardRead
from blupi.schemas.common import NonEmptyStr

RUNTIME_ANNOTATION_TYPES = (UUID, NonEmptyStr, BoardRead)
CsvLayout = Literal["auto", "funnel", "steps-as-columns"]


class CsvBoardImport(SQLModel):
    """Create a new board from CSV text."""

    name: NonEmptyStr
    csv: str
    project_id: UUID | None = None
    description: str | None = None
    layout: CsvLayout = "auto"


class CsvContentImport(SQLModel):
    """Replace an existing board's content with CSV-derived content."""

    csv: str
    layout: CsvLayout = "auto"
    expected_version: int | None = None


class ImportSummary(SQLModel):
    """Counts describing what an import produced."""

    layout: str
    phases: int
    columns: int
    blocks: int


class BoardImportRead(SQLModel):
    """Imported board plus what the conversion produced."""

    board: BoardRead
    summary: ImportSummary
