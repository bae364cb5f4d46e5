"""Request rate limiting for board updates, sheet lookups, and imports."""

from __future__ import annotations

from slowapi import Limiter
from slowapi.util import get_remote_address

from blupi.core.config import settings

limiter = Limiter(
    key_func=get_remote_address,
    storage_uri=settings.rate_limit_storage_uri,
    default_limits=[settings.rate_limit_default] if settings.rate_limit_default else [],
    enabled=settings.rate_limit_enabled,
)

BOARD_UPDATE_LIMIT = settings.rate_limit_board_updates
SHEETS_LIMIT = settings.rate_limit_sheets
IMPORT_LIMIT = settings.rate_limit_imports
