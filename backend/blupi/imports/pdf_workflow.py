"""Workflow PDF import: one process step per page."""

from __future__ import annotations

import io
from dataclasses import dataclass
from typing import TYPE_CHECKING

from pypdf import PdfReader
from pypdf.errors import PyPdfError

from blupi.core.logging import get_logger
from blupi.schemas.board_content import Block, Column, Phase
from blupi.services.board_content import BoardDocument, with_derived_indices

if TYPE_CHECKING:
    from collections.abc import Sequence

IMPORTED_PHASE_NAME = "Imported Workflow"
FALLBACK_TITLE = "Imported PDF Workflow"
FALLBACK_DESCRIPTION = (
    "PDF workflow document imported, but its pages could not be read. "
    "Break this down into individual steps as needed."
)
MAX_COLUMN_NAME = 40

logger = get_logger(__name__)


@dataclass(frozen=True)
class WorkflowStep:
    """One step extracted from a workflow document."""

    number: int
    title: str
    description: str


def _page_step(number: int, text: str) -> WorkflowStep:
    lines = [line.strip() for line in text.splitlines() if line.strip()]
    if not lines:
        return WorkflowStep(number, f"Step {number} - Workflow Page {number}", "")
    return WorkflowStep(number, lines[0], "\n".join(lines[1:]).strip())


def parse_workflow_pdf(data: bytes) -> list[WorkflowStep]:
    """Read a PDF into steps; unreadable files yield a single fallback step."""
    try:
        reader = PdfReader(io.BytesIO(data))
        steps = [
            _page_step(number, page.extract_text() or "")
            for number, page in enumerate(reader.pages, start=1)
        ]
    except (PyPdfError, ValueError, KeyError, TypeError):
        logger.warning("import.pdf.unreadable size=%s", len(data), exc_info=True)
        steps = []
    if not steps:
        return [WorkflowStep(1, FALLBACK_TITLE, FALLBACK_DESCRIPTION)]
    logger.info("import.pdf.parsed pages=%s", len(steps))
    return steps


def append_workflow(
    document: BoardDocument,
    steps: Sequence[WorkflowStep],
    *,
    phase_id: str | None = None,
) -> BoardDocument:
    """Add one column and one process block per step.

    Columns go into `phase_id` when given, otherwise into a new phase
    appended after the existing ones.
    """
    columns = [
        Column(name=step.title if len(step.title) <= MAX_COLUMN_NAME else f"{step.title[:37]}...")
        for step in steps
    ]
    if phase_id is None:
        target = Phase(name=IMPORTED_PHASE_NAME, columns=columns)
        phases = [*document.phases, target]
    else:
        existing = document.phase(phase_id)
        target = existing.model_copy(update={"columns": [*existing.columns, *columns]})
        phases = [target if phase.id == phase_id else phase for phase in document.phases]
    blocks = [
        Block(
            type="process",
            content=step.title,
            notes=step.description or None,
            phase_id=target.id,
            column_id=column.id,
        )
        for step, column in zip(steps, columns)
    ]
    return with_derived_indices(BoardDocument(phases=phases, blocks=[*document.blocks, *blocks]))
