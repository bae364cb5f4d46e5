"""Feature availability payload."""

from __future__ import annotations

from sqlmodel import SQLModel


class FeatureFlagsRead(SQLModel):
    """Integration-backed capabilities available on this deployment."""

    ai_storyboard_generation: bool
    ai_csv_classification: bool
    ai_pdf_parsing: bool
    email_notifications: bool
    pendo_integration: bool
    google_sheets_integration: bool
