"""Blueprint collaboration backend package."""
