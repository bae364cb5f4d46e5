"""Database engine, query helpers, and pagination utilities."""
