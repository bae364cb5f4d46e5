"""CSV to board content conversion.

Two layouts are recognized:

* funnel exports (a header with a "Step" column, one row per funnel step),
  which become one column per step with touchpoint, metrics, and friction
  blocks;
* spreadsheets with steps as columns, where the first column labels each row
  and every other header is a journey step.

Anything else falls back to a generic three-column layout so the user still
gets a board to edit.
"""

from __future__ import annotations

import csv
import io
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from blupi.core.logging import get_logger
from blupi.schemas.board_content import Block, Column, Phase
from blupi.services.board_content import BoardDocument, normalize_document

if TYPE_CHECKING:
    from collections.abc import Sequence

    from blupi.schemas.board_content import BlockType
    from blupi.schemas.imports import CsvLayout

FRICTION_THRESHOLD = 50
MAX_BLOCK_CONTENT = 45
MAX_COLUMN_NAME = 20
FALLBACK_COLUMNS = ("Step 1", "Step 2", "Step 3")
_STEP_PREFIX = re.compile(r"^\d+\.\s*")
_NON_NUMERIC = re.compile(r"[^0-9.]")
_LEADING_INT = re.compile(r"^\s*(-?\d+)")
_DIGIT = re.compile(r"\d")
_STEP_HEADER = re.compile(r"\bsteps?\b", re.IGNORECASE)
_PENDO_MIN_COLUMNS = 5
_EMPTY_CELLS = frozenset({"", "--"})

# (block label, header keywords, column position in a Pendo funnel export)
_FUNNEL_METRICS = (
    ("Visitors", ("visitor", "started"), 2),
    ("Drop-off", ("drop",), 3),
    ("Conversion", ("conversion",), 4),
    ("Time", ("median",), 6),
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class CsvImportResult:
    """Converted document plus the layout that produced it."""

    document: BoardDocument
    layout: str

    @property
    def column_count(self) -> int:
        return sum(len(phase.columns) for phase in self.document.phases)


def parse_csv_rows(text: str) -> list[list[str]]:
    """Parse CSV text into trimmed rows, skipping blank lines."""
    reader = csv.reader(io.StringIO(text.lstrip("\ufeff")))
    rows: list[list[str]] = []
    for row in reader:
        cells = [cell.strip() for cell in row]
        if any(cells):
            rows.append(cells)
    return rows


def parse_numeric(value: str | None) -> float:
    """Loose numeric parse: blank and `--` are 0, other non-digits are dropped."""
    if value is None or value.strip() in _EMPTY_CELLS:
        return 0.0
    cleaned = _NON_NUMERIC.sub("", value)
    try:
        return float(cleaned)
    except ValueError:
        return 0.0


def parse_percent(value: str | None) -> int | None:
    """Integer part of a percentage cell (`"45.5%"` -> 45), or None."""
    if value is None:
        return None
    match = _LEADING_INT.match(value.replace("%", ""))
    return int(match.group(1)) if match else None


def format_duration(seconds: float) -> str:
    """Humanize a duration in seconds."""
    if seconds < 60:
        return f"{seconds:.1f} sec"
    if seconds < 3600:
        minutes = int(seconds // 60)
        return f"{minutes} min {round(seconds % 60)} sec"
    if seconds < 86400:
        hours = int(seconds // 3600)
        return f"{hours} hrs {int((seconds % 3600) // 60)} min"
    days = int(seconds // 86400)
    return f"{days} days {int((seconds % 86400) // 3600)} hrs"


def _truncate(value: str, limit: int) -> str:
    return value if len(value) <= limit else f"{value[: limit - 3]}..."


def _cell(row: Sequence[str], index: int | None) -> str:
    if index is None or index >= len(row):
        return ""
    return row[index]


def is_funnel_header(header: Sequence[str]) -> bool:
    return any(_STEP_HEADER.search(cell) for cell in header)


def _funnel_columns(header: Sequence[str]) -> tuple[int, list[tuple[str, int]]]:
    """Locate the step column and the (label, index) metric columns of a funnel header."""
    lowered = [cell.lower() for cell in header]
    step_index = next(i for i, cell in enumerate(header) if _STEP_HEADER.search(cell))
    others = [i for i in range(len(header)) if i != step_index]
    metrics: list[tuple[str, int]] = []
    for label, keywords, _position in _FUNNEL_METRICS:
        index = next(
            (i for i in others if any(keyword in lowered[i] for keyword in keywords)),
            None,
        )
        if index is not None:
            metrics.append((label, index))
    if metrics:
        return step_index, metrics
    if len(header) >= _PENDO_MIN_COLUMNS:
        # Unlabelled Pendo export: metrics sit at fixed positions.
        return step_index, [(label, position) for label, _keywords, position in _FUNNEL_METRICS]
    # Short unknown header: keep every metric column in order under its own name.
    return step_index, [
        (header[i] or f"Metric {n + 1}", i)
        for n, i in enumerate(others)
    ]


def _conversion_cell(row: Sequence[str], metrics: Sequence[tuple[str, int]]) -> str:
    for label, index in metrics:
        if label == "Conversion":
            return _cell(row, index)
    # No conversion column: the first percentage cell stands in for it.
    return next((_cell(row, i) for _label, i in metrics if "%" in _cell(row, i)), "")


def _placed(
    block_type: BlockType,
    content: str,
    *,
    phase: Phase,
    column: Column,
    notes: str | None = None,
) -> Block:
    return Block(
        type=block_type,
        content=content,
        notes=notes,
        phase_id=phase.id,
        column_id=column.id,
    )


def build_funnel(rows: Sequence[Sequence[str]]) -> BoardDocument:
    """One column per funnel step, each with touchpoint, metrics, and friction blocks."""
    header, data = rows[0], rows[1:]
    step_index, metric_columns = _funnel_columns(header)
    columns: list[Column] = []
    blocks: list[Block] = []
    phase = Phase(name="Phase 1")

    for row in data:
        raw_step = _cell(row, step_index)
        if not raw_step:
            continue
        step_name = _STEP_PREFIX.sub("", raw_step).strip() or raw_step
        column = Column(name=step_name)
        columns.append(column)

        blocks.append(_placed("touchpoint", step_name, phase=phase, column=column))
        for label, index in metric_columns:
            value = _cell(row, index)
            if value in _EMPTY_CELLS:
                continue
            if label == "Time":
                content = f"Time: {format_duration(parse_numeric(value))}"
            else:
                content = f"{label}: {value}"
            blocks.append(_placed("metrics", content, phase=phase, column=column))

        conversion = parse_percent(_conversion_cell(row, metric_columns))
        if conversion is not None and conversion < FRICTION_THRESHOLD:
            blocks.append(
                _placed(
                    "friction",
                    f"High Dropoff at {conversion}%",
                    phase=phase,
                    column=column,
                    notes=f"High drop-off point at {step_name}. Conversion rate: {conversion}%",
                ),
            )

    phase = phase.model_copy(update={"columns": columns})
    return normalize_document([phase], blocks)


def classify_cell(row_label: str, content: str) -> BlockType:
    """Keyword heuristic for a spreadsheet cell's block type."""
    combined = f"{row_label} {content}".lower()
    if any(word in combined for word in ("activity", "action", "process")):
        return "process"
    if "note" in combined or "comment" in combined:
        return "note"
    if any(word in combined for word in ("metric", "count", "rate")) or _DIGIT.search(content):
        return "metrics"
    if any(word in combined for word in ("touchpoint", "interaction", "contact")):
        return "touchpoint"
    if any(word in combined for word in ("friction", "issue", "problem")):
        return "friction"
    return "note"


def build_steps_as_columns(rows: Sequence[Sequence[str]]) -> BoardDocument:
    """Header cells after the first become columns; each non-empty cell a block."""
    header, data = rows[0], rows[1:]
    columns = [Column(name=_truncate(name, MAX_COLUMN_NAME)) for name in header[1:]]
    phase = Phase(name="Customer Journey", columns=columns)
    blocks: list[Block] = []
    for row in data:
        row_label = _cell(row, 0)
        if not row_label:
            continue
        for column, value in zip(columns, row[1:]):
            if not value:
                continue
            blocks.append(
                Block(
                    type=classify_cell(row_label, value),
                    content=_truncate(value, MAX_BLOCK_CONTENT),
                    notes=f"{row_label}: {value}",
                    phase_id=phase.id,
                    column_id=column.id,
                ),
            )
    return normalize_document([phase], blocks)


def build_fallback(first_line: str) -> BoardDocument:
    """Generic layout used when no structure is detected."""
    phase = Phase(name="Phase 1", columns=[Column(name=name) for name in FALLBACK_COLUMNS])
    note = Block(
        type="note",
        content=_truncate(first_line, MAX_BLOCK_CONTENT),
        notes=first_line or None,
        phase_id=phase.id,
        column_id=phase.columns[0].id,
    )
    return normalize_document([phase], [note])


def import_csv(text: str, layout: CsvLayout = "auto") -> CsvImportResult:
    """Convert CSV text into a board document."""
    rows = parse_csv_rows(text)
    first_line = next((line.strip() for line in text.splitlines() if line.strip()), "")
    if len(rows) < 2:
        logger.info("import.csv.fallback reason=no_data rows=%s", len(rows))
        return CsvImportResult(build_fallback(first_line), "fallback")

    header = rows[0]
    chosen = layout
    if chosen == "auto":
        if is_funnel_header(header):
            chosen = "funnel"
        elif len(header) >= 2:
            chosen = "steps-as-columns"

    document: BoardDocument | None = None
    if chosen == "funnel" and is_funnel_header(header):
        document = build_funnel(rows)
    elif chosen == "steps-as-columns" and len(header) >= 2:
        document = build_steps_as_columns(rows)

    if document is None or not document.blocks:
        logger.info("import.csv.fallback reason=no_structure layout=%s", layout)
        return CsvImportResult(build_fallback(first_line), "fallback")
    logger.info(
        "import.csv.converted layout=%s columns=%s blocks=%s",
        chosen,
        sum(len(phase.columns) for phase in document.phases),
        len(document.blocks),
    )
    return CsvImportResult(document, chosen)
