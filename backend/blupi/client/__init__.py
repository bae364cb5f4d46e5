"""Python client for the board HTTP API and realtime channel."""
