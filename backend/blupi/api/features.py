"""Feature availability endpoint used by clients to hide unconfigured integrations."""

from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter

from blupi.core.feature_flags import get_feature_flags
from blupi.schemas.features import FeatureFlagsRead

router = APIRouter(prefix="/features", tags=["features"])


@router.get("", response_model=FeatureFlagsRead)
def get_features() -> FeatureFlagsRead:
    """Return which integration-backed features are enabled."""
    return FeatureFlagsRead(**asdict(get_feature_flags()))
