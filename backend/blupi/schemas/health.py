"""Probe payloads for `/health`, `/healthz`, and `/readyz`."""

from __future__ import annotations

from pydantic import Field
from sqlmodel import SQLModel


class HealthStatusResponse(SQLModel):
    """Probe result; the process answers only while it can serve requests."""

    ok: bool = Field(description="True when the probe passed.", examples=[True])
