# ruff: noqa: INP001
"""Workflow PDF parsing and appending steps to a board document."""

from __future__ import annotations

import io

import pytest
from pypdf import PdfWriter

from blupi.core.errors import BoardContentError
from blupi.imports.pdf_workflow import (
    FALLBACK_TITLE,
    IMPORTED_PHASE_NAME,
    WorkflowStep,
    append_workflow,
    parse_workflow_pdf,
)
from blupi.schemas.board_content import Block, Column, Phase
from blupi.services.board_content import normalize_document


def _blank_pdf(pages: int) -> bytes:
    writer = PdfWriter()
    for _ in range(pages):
        writer.add_blank_page(width=200, height=200)
    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


def _document():
    phase = Phase(id="p1", name="Onboard", columns=[Column(id="c1", name="Welcome")])
    block = Block(id="b1", type="touchpoint", content="Welcome email", phase_id="p1", column_id="c1")
    return normalize_document([phase], [block])


def test_unreadable_bytes_yield_single_fallback_step() -> None:
    steps = parse_workflow_pdf(b"definitely not a pdf")

    assert len(steps) == 1
    assert steps[0].title == FALLBACK_TITLE
    assert steps[0].description


def test_blank_pages_get_numbered_titles() -> None:
    steps = parse_workflow_pdf(_blank_pdf(2))

    assert [step.title for step in steps] == [
        "Step 1 - Workflow Page 1",
        "Step 2 - Workflow Page 2",
    ]
    assert all(step.description == "" for step in steps)


def test_append_creates_a_new_phase_after_existing_ones() -> None:
    steps = [
        WorkflowStep(1, "Collect documents", "ID and proof of address"),
        WorkflowStep(2, "A" * 60, ""),
    ]
    updated = append_workflow(_document(), steps)

    assert [phase.name for phase in updated.phases] == ["Onboard", IMPORTED_PHASE_NAME]
    imported = updated.phases[1]
    assert imported.columns[0].name == "Collect documents"
    assert imported.columns[1].name == "A" * 37 + "..."
    new_blocks = updated.blocks[1:]
    assert [block.type for block in new_blocks] == ["process", "process"]
    assert new_blocks[0].notes == "ID and proof of address"
    assert new_blocks[1].notes is None
    assert new_blocks[1].content == "A" * 60
    assert all(block.phase_index == 1 for block in new_blocks)
    assert updated.block("b1").phase_index == 0


def test_append_into_existing_phase_extends_its_columns() -> None:
    updated = append_workflow(_document(), [WorkflowStep(1, "Verify", "")], phase_id="p1")

    assert len(updated.phases) == 1
    assert [column.name for column in updated.phases[0].columns] == ["Welcome", "Verify"]
    assert updated.blocks[-1].column_index == 1


def test_append_into_unknown_phase_fails() -> None:
    with pytest.raises(BoardContentError):
        append_workflow(_document(), [WorkflowStep(1, "Verify", "")], phase_id="missing")
