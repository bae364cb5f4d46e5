"""Board content document operations with stable phase/column/block ids.

Blocks reference their slot by `phase_id` / `column_id`. Positional indices
supplied by clients are resolved to ids against the document being written,
and indices on reads are derived from the current structure, so moving or
deleting one phase/column never re-targets blocks that live elsewhere.

All functions are pure: they return a new `BoardDocument` and raise
`BoardContentError` (HTTP 400) when an invariant would be violated.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from blupi.core.errors import BoardContentError
from blupi.schemas.board_content import (
    PLACEMENT_INDEX_FIELDS,
    Block,
    Column,
    Phase,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from blupi.schemas.board_content import BlockPatch, ColumnCreate, PhaseCreate

_PLACEMENT_FIELDS = ("phase_id", "column_id", "phase_index", "column_index")


@dataclass(frozen=True)
class BoardDocument:
    """Validated phases and blocks of one board."""

    phases: list[Phase] = field(default_factory=list)
    blocks: list[Block] = field(default_factory=list)

    def phase(self, phase_id: str) -> Phase:
        for phase in self.phases:
            if phase.id == phase_id:
                return phase
        raise BoardContentError(f"Phase '{phase_id}' does not exist on this board.")

    def block(self, block_id: str) -> Block:
        for block in self.blocks:
            if block.id == block_id:
                return block
        raise BoardContentError(f"Block '{block_id}' does not exist on this board.")

    def has_block(self, block_id: str) -> bool:
        return any(block.id == block_id for block in self.blocks)


def _ensure_unique(ids: Iterable[str], kind: str) -> None:
    seen: set[str] = set()
    for item_id in ids:
        if item_id in seen:
            raise BoardContentError(f"Duplicate {kind} id '{item_id}'.")
        seen.add(item_id)


def resolve_block_placement(phases: Sequence[Phase], block: Block) -> Block:
    """Return `block` with ids and derived indices for its slot.

    Explicit ids win over positional indices; indices are only consulted for
    the parts of the placement that carry no id.
    """
    phase_pos: int | None = None
    if block.phase_id is not None:
        phase_pos = next((i for i, p in enumerate(phases) if p.id == block.phase_id), None)
        if phase_pos is None:
            raise BoardContentError(
                f"Block '{block.id}' references unknown phase '{block.phase_id}'.",
            )
    elif block.phase_index is not None:
        if block.phase_index >= len(phases):
            raise BoardContentError(
                f"Block '{block.id}' phaseIndex {block.phase_index} is out of range.",
            )
        phase_pos = block.phase_index

    column_pos: int | None = None
    if block.column_id is not None:
        owner = next(
            (
                (pi, ci)
                for pi, phase in enumerate(phases)
                for ci, column in enumerate(phase.columns)
                if column.id == block.column_id
            ),
            None,
        )
        if owner is None:
            raise BoardContentError(
                f"Block '{block.id}' references unknown column '{block.column_id}'.",
            )
        if phase_pos is not None and owner[0] != phase_pos:
            raise BoardContentError(
                f"Column '{block.column_id}' does not belong to the block's phase.",
            )
        phase_pos, column_pos = owner
    elif block.column_index is not None and phase_pos is not None:
        if block.column_index >= len(phases[phase_pos].columns):
            raise BoardContentError(
                f"Block '{block.id}' columnIndex {block.column_index} is out of range.",
            )
        column_pos = block.column_index

    if phase_pos is None or column_pos is None:
        raise BoardContentError(f"Block '{block.id}' must be placed on a phase and a column.")
    phase = phases[phase_pos]
    return block.model_copy(
        update={
            "phase_id": phase.id,
            "column_id": phase.columns[column_pos].id,
            "phase_index": phase_pos,
            "column_index": column_pos,
        },
    )


def normalize_document(phases: Sequence[Phase], blocks: Sequence[Block]) -> BoardDocument:
    """Validate ids and resolve every block's placement."""
    phase_list = list(phases)
    _ensure_unique((phase.id for phase in phase_list), "phase")
    _ensure_unique((column.id for phase in phase_list for column in phase.columns), "column")
    _ensure_unique((block.id for block in blocks), "block")
    return BoardDocument(
        phases=phase_list,
        blocks=[resolve_block_placement(phase_list, block) for block in blocks],
    )


def with_derived_indices(document: BoardDocument) -> BoardDocument:
    """Recompute positional indices from the current phase/column order."""
    return normalize_document(
        document.phases,
        [
            block.model_copy(update={"phase_index": None, "column_index": None})
            for block in document.blocks
        ],
    )


def load_document(
    phases: Sequence[dict[str, Any]] | None,
    blocks: Sequence[dict[str, Any]] | None,
) -> BoardDocument:
    """Parse stored (or client-supplied) JSON into a normalized document."""
    try:
        phase_models = [Phase.model_validate(item) for item in phases or []]
        block_models = [Block.model_validate(item) for item in blocks or []]
    except ValidationError as exc:
        raise BoardContentError(f"Invalid board content: {exc.errors()[0]['msg']}") from exc
    return normalize_document(phase_models, block_models)


def dump_phases(document: BoardDocument) -> list[dict[str, Any]]:
    return [
        phase.model_dump(mode="json", by_alias=True, exclude_none=True)
        for phase in document.phases
    ]


def dump_blocks(document: BoardDocument) -> list[dict[str, Any]]:
    """Serialize blocks for storage; positional indices are never persisted."""
    return [
        block.model_dump(
            mode="json",
            by_alias=True,
            exclude_none=True,
            exclude=set(PLACEMENT_INDEX_FIELDS),
        )
        for block in document.blocks
    ]


def replace_document(phases: Sequence[Phase], blocks: Sequence[Block]) -> BoardDocument:
    """Build the document for a whole-content save."""
    return normalize_document(phases, blocks)


def add_block(document: BoardDocument, block: Block) -> BoardDocument:
    if document.has_block(block.id):
        raise BoardContentError(f"Duplicate block id '{block.id}'.")
    placed = resolve_block_placement(document.phases, block)
    return BoardDocument(phases=list(document.phases), blocks=[*document.blocks, placed])


def update_block(document: BoardDocument, block_id: str, patch: BlockPatch) -> BoardDocument:
    """Apply the fields set on `patch` to one block."""
    current = document.block(block_id)
    updates = patch.model_dump(exclude_unset=True)
    merged = current.model_dump()
    placement = {key: updates.pop(key) for key in _PLACEMENT_FIELDS if key in updates}
    if placement:
        moved = dict.fromkeys(_PLACEMENT_FIELDS)
        moved.update(placement)
        if not {"phase_id", "phase_index", "column_id"} & placement.keys():
            moved["phase_id"] = current.phase_id
        merged.update(moved)
    merged.update(updates)
    try:
        updated = Block.model_validate(merged)
    except ValidationError as exc:
        raise BoardContentError(f"Invalid block update: {exc.errors()[0]['msg']}") from exc
    placed = resolve_block_placement(document.phases, updated)
    return BoardDocument(
        phases=list(document.phases),
        blocks=[placed if block.id == block_id else block for block in document.blocks],
    )


def remove_block(document: BoardDocument, block_id: str) -> BoardDocument:
    document.block(block_id)
    return BoardDocument(
        phases=list(document.phases),
        blocks=[block for block in document.blocks if block.id != block_id],
    )


def _clamp(position: int | None, length: int) -> int:
    if position is None or position > length:
        return length
    return max(position, 0)


def add_phase(document: BoardDocument, payload: PhaseCreate) -> BoardDocument:
    phase = Phase(name=payload.name, columns=list(payload.columns))
    phases = list(document.phases)
    phases.insert(_clamp(payload.position, len(phases)), phase)
    return with_derived_indices(BoardDocument(phases=phases, blocks=list(document.blocks)))


def add_column(document: BoardDocument, phase_id: str, payload: ColumnCreate) -> BoardDocument:
    target = document.phase(phase_id)
    column = Column(
        name=payload.name,
        image=payload.image,
        storyboard_prompt=payload.storyboard_prompt,
        emotion=payload.emotion,
    )
    columns = list(target.columns)
    columns.insert(_clamp(payload.position, len(columns)), column)
    phases = [
        phase.model_copy(update={"columns": columns}) if phase.id == phase_id else phase
        for phase in document.phases
    ]
    return with_derived_indices(BoardDocument(phases=phases, blocks=list(document.blocks)))


def move_phase(document: BoardDocument, phase_id: str, position: int) -> BoardDocument:
    """Move a phase; its blocks travel with it."""
    target = document.phase(phase_id)
    phases = [phase for phase in document.phases if phase.id != phase_id]
    phases.insert(_clamp(position, len(phases)), target)
    return with_derived_indices(BoardDocument(phases=phases, blocks=list(document.blocks)))


def move_column(
    document: BoardDocument,
    phase_id: str,
    column_id: str,
    position: int,
) -> BoardDocument:
    """Reorder a column inside its phase; its blocks travel with it."""
    target_phase = document.phase(phase_id)
    column = next((c for c in target_phase.columns if c.id == column_id), None)
    if column is None:
        raise BoardContentError(f"Column '{column_id}' does not exist in phase '{phase_id}'.")
    columns = [c for c in target_phase.columns if c.id != column_id]
    columns.insert(_clamp(position, len(columns)), column)
    phases = [
        phase.model_copy(update={"columns": columns}) if phase.id == phase_id else phase
        for phase in document.phases
    ]
    return with_derived_indices(BoardDocument(phases=phases, blocks=list(document.blocks)))


def remove_phase(
    document: BoardDocument,
    phase_id: str,
    *,
    remove_blocks: bool = True,
) -> BoardDocument:
    """Delete a phase; its blocks are deleted too unless `remove_blocks=False`."""
    document.phase(phase_id)
    orphaned = [block for block in document.blocks if block.phase_id == phase_id]
    if orphaned and not remove_blocks:
        raise BoardContentError(
            f"Phase '{phase_id}' still holds {len(orphaned)} block(s).",
        )
    return with_derived_indices(
        BoardDocument(
            phases=[phase for phase in document.phases if phase.id != phase_id],
            blocks=[block for block in document.blocks if block.phase_id != phase_id],
        ),
    )


def remove_column(
    document: BoardDocument,
    phase_id: str,
    column_id: str,
    *,
    remove_blocks: bool = True,
) -> BoardDocument:
    """Delete a column; its blocks are deleted too unless `remove_blocks=False`."""
    target_phase = document.phase(phase_id)
    if not any(column.id == column_id for column in target_phase.columns):
        raise BoardContentError(f"Column '{column_id}' does not exist in phase '{phase_id}'.")
    orphaned = [block for block in document.blocks if block.column_id == column_id]
    if orphaned and not remove_blocks:
        raise BoardContentError(
            f"Column '{column_id}' still holds {len(orphaned)} block(s).",
        )
    phases = [
        phase.model_copy(
            update={"columns": [c for c in phase.columns if c.id != column_id]},
        )
        if phase.id == phase_id
        else phase
        for phase in document.phases
    ]
    return with_derived_indices(
        BoardDocument(
            phases=phases,
            blocks=[block for block in document.blocks if block.column_id != column_id],
        ),
    )
