"""Thin wrappers around third-party APIs used by import flows."""
