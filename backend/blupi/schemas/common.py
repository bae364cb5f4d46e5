"""Common reusable schema primitives and simple API response envelopes."""

from __future__ import annotations

from typing import Annotated

from pydantic import StringConstraints
from sqlmodel import Field, SQLModel

NonEmptyStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
HexColor = Annotated[
    str,
    StringConstraints(strip_whitespace=True, pattern=r"(?i)^#[0-9A-F]{6}([0-9A-F]{2})?$"),
]


class OkResponse(SQLModel):
    """Standard success response payload."""

    ok: bool = Field(default=True, description="Always true for successful operations.")
