# ruff: noqa: INP001
"""CSV conversion into board documents."""

from __future__ import annotations

import pytest

from blupi.imports import csv_funnel
from blupi.imports.csv_funnel import import_csv

FUNNEL_CSV = """\ufeffStep,Visitors,Drop-off,Conversion Rate,Median Time
1. Landing,1000,--,100%,12
2. Sign up,400,600,40%,95

"""

STEPS_CSV = """Stage,Awareness,Purchase
Touchpoint,Ad click,Checkout page
Metric,,Conversion 12%
Issue,Slow load,
"""


def _contents(result: csv_funnel.CsvImportResult, column_name: str) -> list[tuple[str, str]]:
    column = next(
        column
        for phase in result.document.phases
        for column in phase.columns
        if column.name == column_name
    )
    return [
        (block.type, block.content)
        for block in result.document.blocks
        if block.column_id == column.id
    ]


def test_funnel_export_becomes_one_column_per_step() -> None:
    result = import_csv(FUNNEL_CSV)

    assert result.layout == "funnel"
    assert [column.name for column in result.document.phases[0].columns] == ["Landing", "Sign up"]
    assert _contents(result, "Landing") == [
        ("touchpoint", "Landing"),
        ("metrics", "Visitors: 1000"),
        ("metrics", "Conversion: 100%"),
        ("metrics", "Time: 12.0 sec"),
    ]


def test_low_conversion_step_gets_a_friction_block() -> None:
    result = import_csv(FUNNEL_CSV)
    blocks = _contents(result, "Sign up")

    assert ("metrics", "Drop-off: 600") in blocks
    assert ("metrics", "Time: 1 min 35 sec") in blocks
    assert blocks[-1] == ("friction", "High Dropoff at 40%")
    friction = result.document.blocks[-1]
    assert friction.notes == "High drop-off point at Sign up. Conversion rate: 40%"


def test_funnel_blocks_carry_stable_placement() -> None:
    result = import_csv(FUNNEL_CSV)
    phase = result.document.phases[0]

    for block in result.document.blocks:
        assert block.phase_id == phase.id
        assert block.phase_index == 0
        assert block.column_id in {column.id for column in phase.columns}


def test_steps_as_columns_classifies_cells() -> None:
    result = import_csv(STEPS_CSV)

    assert result.layout == "steps-as-columns"
    assert result.document.phases[0].name == "Customer Journey"
    assert _contents(result, "Awareness") == [("touchpoint", "Ad click"), ("friction", "Slow load")]
    assert _contents(result, "Purchase") == [
        ("touchpoint", "Checkout page"),
        ("metrics", "Conversion 12%"),
    ]
    assert result.column_count == 2


def test_forced_funnel_layout_without_step_header_falls_back() -> None:
    result = import_csv(STEPS_CSV, "funnel")

    assert result.layout == "fallback"
    assert [column.name for column in result.document.phases[0].columns] == [
        "Step 1",
        "Step 2",
        "Step 3",
    ]
    assert result.document.blocks[0].content == "Stage,Awareness,Purchase"


def test_single_line_input_falls_back_with_truncated_note() -> None:
    line = "x" * 80
    result = import_csv(line)

    assert result.layout == "fallback"
    note = result.document.blocks[0]
    assert note.type == "note"
    assert len(note.content) == csv_funnel.MAX_BLOCK_CONTENT
    assert note.content.endswith("...")
    assert note.notes == line


@pytest.mark.parametrize(
    ("seconds", "expected"),
    [
        (5, "5.0 sec"),
        (125, "2 min 5 sec"),
        (7260, "2 hrs 1 min"),
        (90000, "1 days 1 hrs"),
    ],
)
def test_format_duration(seconds: float, expected: str) -> None:
    assert csv_funnel.format_duration(seconds) == expected


@pytest.mark.parametrize(
    ("value", "expected"),
    [("45.5%", 45), (" 7 %", 7), ("n/a", None), (None, None)],
)
def test_parse_percent(value: str | None, expected: int | None) -> None:
    assert csv_funnel.parse_percent(value) == expected


def test_parse_numeric_is_lenient() -> None:
    assert csv_funnel.parse_numeric("--") == 0.0
    assert csv_funnel.parse_numeric("1,234") == 1234.0
    assert csv_funnel.parse_numeric("abc") == 0.0


@pytest.mark.parametrize("header", ["Step", "steps", "Funnel Step", "Step Name"])
def test_funnel_header_variants(header: str) -> None:
    assert csv_funnel.is_funnel_header([header, "Visitors"])


def test_stage_header_is_not_a_funnel() -> None:
    assert not csv_funnel.is_funnel_header(["Stage", "Visitors"])


def test_funnel_with_unrecognised_metric_headers_keeps_every_cell() -> None:
    result = import_csv('Step,Count,Rate\n"1. Landing Page","1,200","45%"\n')

    assert result.layout == "funnel"
    assert _contents(result, "Landing Page") == [
        ("touchpoint", "Landing Page"),
        ("metrics", "Count: 1,200"),
        ("metrics", "Rate: 45%"),
        ("friction", "High Dropoff at 45%"),
    ]


def test_unlabelled_wide_funnel_uses_export_positions() -> None:
    result = import_csv("Step,A,B,C,D,E,F\n1. Home,x,900,100,20%,y,30\n")

    assert _contents(result, "Home") == [
        ("touchpoint", "Home"),
        ("metrics", "Visitors: 900"),
        ("metrics", "Drop-off: 100"),
        ("metrics", "Conversion: 20%"),
        ("metrics", "Time: 30.0 sec"),
        ("friction", "High Dropoff at 20%"),
    ]


def test_step_word_anywhere_in_header_marks_a_funnel() -> None:
    result = import_csv('Journey Step,Visitors,Conversion\n"1. Landing Page","1,200","45%"\n')

    assert result.layout == "funnel"
    assert [column.name for column in result.document.phases[0].columns] == ["Landing Page"]
    assert ("metrics", "Visitors: 1,200") in _contents(result, "Landing Page")


def test_step_must_be_a_whole_word() -> None:
    assert not csv_funnel.is_funnel_header(["Stepper", "Visitors"])
