"""Adapters that turn CSV, spreadsheet, and PDF sources into board content."""
