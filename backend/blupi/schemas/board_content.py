"""Board content document: phases, columns, and typed blocks.

These models describe the JSON stored in `boards.phases` / `boards.blocks`.
They are validated at the application boundary only; the database treats
both columns as opaque JSON. Field names serialize as camelCase to keep the
document shape shared with browser clients (`phaseId`, `isDivider`, ...),
while snake_case input is accepted as well.

Blocks are placed by stable `phaseId` / `columnId` references. The
positional `phaseIndex` / `columnIndex` fields are accepted on input for
clients that only know coordinates and are derived on every read; they are
never persisted.
"""

from __future__ import annotations

from typing import Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

BlockType = Literal[
    "touchpoint",
    "email",
    "pendo",
    "role",
    "process",
    "friction",
    "policy",
    "technology",
    "rationale",
    "question",
    "note",
    "hidden",
    "hypothesis",
    "insight",
    "metrics",
    "experiment",
    "video",
    "front-stage",
    "back-stage",
    "custom-divider",
]
Department = Literal[
    "Engineering",
    "Marketing",
    "Product",
    "Design",
    "Brand",
    "Support",
    "Sales",
    "Custom",
]
AttachmentType = Literal["link", "image", "video"]
PLACEMENT_INDEX_FIELDS = frozenset({"phase_index", "column_index"})


def new_content_id(prefix: str) -> str:
    """Return a new opaque id for a phase, column, block, or attachment."""
    return f"{prefix}-{uuid4().hex[:12]}"


class ContentModel(BaseModel):
    """Base for content document models (camelCase on the wire)."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class Emotion(ContentModel):
    """Customer emotion score attached to a column (1 = negative, 7 = positive)."""

    value: int = Field(ge=1, le=7)
    color: str | None = None


class Column(ContentModel):
    """A step slot inside a phase that blocks attach to."""

    id: str = Field(default_factory=lambda: new_content_id("column"), min_length=1)
    name: str = ""
    image: str | None = None
    storyboard_prompt: str | None = None
    storyboard_image_url: str | None = None
    emotion: Emotion | None = None


class Phase(ContentModel):
    """Ordered group of columns."""

    id: str = Field(default_factory=lambda: new_content_id("phase"), min_length=1)
    name: str = ""
    columns: list[Column] = Field(default_factory=list)
    collapsed: bool = False
    imported_from_board_id: str | None = None


class BlockComment(ContentModel):
    """Inline comment stored on the block itself (legacy document shape)."""

    id: str = Field(default_factory=lambda: new_content_id("comment"))
    content: str
    user_id: str | None = None
    username: str | None = None
    created_at: str | None = None
    completed: bool = False


class Attachment(ContentModel):
    """Link, image, or video attached to a block."""

    id: str = Field(default_factory=lambda: new_content_id("attachment"))
    type: AttachmentType
    url: str = Field(min_length=1)
    title: str | None = None


class SheetsConnection(ContentModel):
    """Binding between a block and a spreadsheet cell range."""

    sheet_id: str
    sheet_name: str | None = None
    cell_range: str
    label: str | None = None
    last_updated: str | None = None
    formatted_value: str | None = None


class Block(ContentModel):
    """Typed content unit placed on a (phase, column) slot."""

    id: str = Field(default_factory=lambda: new_content_id("block"), min_length=1)
    type: BlockType
    content: str = ""
    phase_id: str | None = None
    column_id: str | None = None
    phase_index: int | None = Field(default=None, ge=0)
    column_index: int | None = Field(default=None, ge=0)
    comments: list[BlockComment] = Field(default_factory=list)
    attachments: list[Attachment] = Field(default_factory=list)
    notes: str | None = None
    emoji: str | None = None
    department: Department | None = None
    custom_department: str | None = None
    is_divider: bool = False
    sheets_connection: SheetsConnection | None = None
    experiment_target: str | None = None
    flagged: bool = False


class BlockPatch(ContentModel):
    """Partial update for a single block; unset fields are left unchanged."""

    type: BlockType | None = None
    content: str | None = None
    phase_id: str | None = None
    column_id: str | None = None
    phase_index: int | None = Field(default=None, ge=0)
    column_index: int | None = Field(default=None, ge=0)
    comments: list[BlockComment] | None = None
    attachments: list[Attachment] | None = None
    notes: str | None = None
    emoji: str | None = None
    department: Department | None = None
    custom_department: str | None = None
    is_divider: bool | None = None
    sheets_connection: SheetsConnection | None = None
    experiment_target: str | None = None
    flagged: bool | None = None


class PhaseCreate(ContentModel):
    """Payload for appending or inserting a phase."""

    name: str = Field(min_length=1)
    columns: list[Column] = Field(default_factory=list)
    position: int | None = Field(default=None, ge=0)


class ColumnCreate(ContentModel):
    """Payload for appending or inserting a column into a phase."""

    name: str = Field(min_length=1)
    image: str | None = None
    storyboard_prompt: str | None = None
    emotion: Emotion | None = None
    position: int | None = Field(default=None, ge=0)


class MoveRequest(ContentModel):
    """Target position for a phase or column move."""

    position: int = Field(ge=0)
