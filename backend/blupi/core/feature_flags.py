"""Capability detection from configured integration keys.

A feature is enabled when the credentials it needs are present; nothing is
toggled explicitly. Routes that depend on an integration call
`require_feature`, which raises `FeatureDisabledError` (HTTP 503).
"""

from __future__ import annotations

from dataclasses import asdict, dataclass

from blupi.core.config import Settings, settings
from blupi.core.errors import FeatureDisabledError
from blupi.core.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class FeatureFlags:
    """Resolved feature availability for the running deployment."""

    ai_storyboard_generation: bool
    ai_csv_classification: bool
    ai_pdf_parsing: bool
    email_notifications: bool
    pendo_integration: bool
    google_sheets_integration: bool


def _has(value: str) -> bool:
    return bool(value and value.strip())


def get_feature_flags(config: Settings | None = None) -> FeatureFlags:
    """Derive feature flags from the presence of integration keys."""
    cfg = config or settings
    return FeatureFlags(
        ai_storyboard_generation=_has(cfg.openai_api_key) or _has(cfg.replicate_api_token),
        ai_csv_classification=_has(cfg.openai_api_key),
        ai_pdf_parsing=_has(cfg.openai_api_key),
        email_notifications=_has(cfg.sendgrid_api_key),
        pendo_integration=_has(cfg.pendo_api_key),
        google_sheets_integration=_has(cfg.google_api_key),
    )


def enabled_features(config: Settings | None = None) -> list[str]:
    return [name for name, on in asdict(get_feature_flags(config)).items() if on]


def disabled_features(config: Settings | None = None) -> list[str]:
    return [name for name, on in asdict(get_feature_flags(config)).items() if not on]


def is_feature_enabled(feature: str, config: Settings | None = None) -> bool:
    """Return whether a named feature is enabled; unknown names are disabled."""
    return bool(asdict(get_feature_flags(config)).get(feature, False))


def require_feature(feature: str, config: Settings | None = None) -> None:
    """Raise `FeatureDisabledError` unless the named feature is enabled."""
    if not is_feature_enabled(feature, config):
        raise FeatureDisabledError(feature)


def log_feature_status(config: Settings | None = None) -> None:
    """Log which integrations are available at startup."""
    logger.info(
        "app.features enabled=%s disabled=%s",
        ",".join(enabled_features(config)) or "-",
        ",".join(disabled_features(config)) or "-",
    )
