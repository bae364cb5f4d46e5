"""Core configuration, auth, logging, and HTTP middleware helpers."""
