"""FastAPI application entrypoint and router wiring for the backend."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import APIRouter, FastAPI, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi_pagination import add_pagination
from slowapi.middleware import SlowAPIMiddleware

from blupi.api.boards import router as boards_router
from blupi.api.comments import router as comments_router
from blupi.api.features import router as features_router
from blupi.api.google_sheets import router as google_sheets_router
from blupi.api.imports import router as imports_router
from blupi.api.notifications import router as notifications_router
from blupi.api.organizations import router as organizations_router
from blupi.api.projects import router as projects_router
from blupi.api.realtime import router as realtime_router
from blupi.api.users import router as users_router
from blupi.core.config import settings
from blupi.core.error_handling import install_error_handling
from blupi.core.feature_flags import log_feature_status
from blupi.core.logging import configure_logging, get_logger
from blupi.core.rate_limit import limiter
from blupi.core.security_headers import SecurityHeadersMiddleware
from blupi.db.session import init_db
from blupi.realtime.backplane import RedisBackplane
from blupi.realtime.hub import BoardHub
from blupi.schemas.health import HealthStatusResponse

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

configure_logging()
logger = get_logger(__name__)
OPENAPI_TAGS = [
    {
        "name": "health",
        "description": "Service liveness/readiness probes used by infrastructure checks.",
    },
    {"name": "users", "description": "Profile of the authenticated user."},
    {
        "name": "organizations",
        "description": "Organizations, active-organization switching, members, and invites.",
    },
    {"name": "projects", "description": "Projects grouping boards, with project-level sharing."},
    {
        "name": "boards",
        "description": "Board lifecycle, content edits, public sharing, tags, and flags.",
    },
    {"name": "comments", "description": "Board and block comment threads with mentions."},
    {"name": "notifications", "description": "Per-user notification inbox."},
    {"name": "imports", "description": "CSV and PDF imports into boards."},
    {"name": "google-sheets", "description": "Spreadsheet lookups and board sheet documents."},
    {"name": "features", "description": "Capabilities enabled on this deployment."},
]


def _build_hub() -> BoardHub:
    if not settings.realtime_redis_url:
        logger.info("app.realtime.backplane mode=memory")
        return BoardHub()
    logger.info("app.realtime.backplane mode=redis")
    return BoardHub(
        backplane=RedisBackplane.from_url(
            settings.realtime_redis_url,
            prefix=settings.realtime_channel_prefix,
            presence_ttl_seconds=settings.realtime_presence_ttl_seconds,
        ),
    )


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI) -> AsyncIterator[None]:
    """Initialize the database and realtime hub before serving requests."""
    logger.info(
        "app.lifecycle.starting environment=%s db_auto_migrate=%s",
        settings.environment,
        settings.db_auto_migrate,
    )
    await init_db()
    log_feature_status()
    hub = _build_hub()
    await hub.start()
    fastapi_app.state.board_hub = hub
    logger.info("app.lifecycle.started")
    try:
        yield
    finally:
        await hub.stop()
        logger.info("app.lifecycle.stopped")


app = FastAPI(
    title="Blupi API",
    version="0.1.0",
    lifespan=lifespan,
    openapi_tags=OPENAPI_TAGS,
)

origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
if origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Total-Count", "X-Limit", "X-Offset", "X-Request-Id"],
    )
    logger.info("app.cors.enabled origins_count=%s", len(origins))
else:
    logger.info("app.cors.disabled")

app.state.limiter = limiter
app.add_middleware(SlowAPIMiddleware)
app.add_middleware(
    SecurityHeadersMiddleware,
    x_content_type_options=settings.security_header_x_content_type_options,
    x_frame_options=settings.security_header_x_frame_options,
    referrer_policy=settings.security_header_referrer_policy,
    permissions_policy=settings.security_header_permissions_policy,
)
install_error_handling(app)


@app.get(
    "/health",
    tags=["health"],
    response_model=HealthStatusResponse,
    summary="Health Check",
    responses={
        status.HTTP_200_OK: {
            "description": "Service is alive.",
            "content": {"application/json": {"example": {"ok": True}}},
        },
    },
)
def health() -> HealthStatusResponse:
    """Lightweight liveness probe endpoint."""
    return HealthStatusResponse(ok=True)


@app.get("/healthz", tags=["health"], response_model=HealthStatusResponse)
def healthz() -> HealthStatusResponse:
    """Alias liveness probe endpoint for platform compatibility."""
    return HealthStatusResponse(ok=True)


@app.get("/readyz", tags=["health"], response_model=HealthStatusResponse)
def readyz() -> HealthStatusResponse:
    """Readiness probe endpoint for service orchestration checks."""
    return HealthStatusResponse(ok=True)


api = APIRouter(prefix="/api")
api.include_router(users_router)
api.include_router(organizations_router)
api.include_router(projects_router)
api.include_router(boards_router)
api.include_router(comments_router)
api.include_router(notifications_router)
api.include_router(imports_router)
api.include_router(google_sheets_router)
api.include_router(features_router)
app.include_router(api)
app.include_router(realtime_router)

add_pagination(app)
logger.debug("app.routes.registered count=%s", len(app.routes))
