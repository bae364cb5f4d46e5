"""User authentication helpers for Clerk and local-token auth modes."""

from __future__ import annotations

from dataclasses import dataclass
from hmac import compare_digest
from typing import TYPE_CHECKING, Literal

import httpx
from clerk_backend_api import Clerk
from clerk_backend_api.models.clerkerrors import ClerkErrors
from clerk_backend_api.models.sdkerror import SDKError
from clerk_backend_api.security.types import AuthenticateRequestOptions, AuthStatus, RequestState
from fastapi import Depends, HTTPException, Request, WebSocket, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, ValidationError
from starlette.concurrency import run_in_threadpool

from blupi.core.auth_mode import AuthMode
from blupi.core.config import settings
from blupi.core.logging import get_logger
from blupi.db import crud
from blupi.db.session import async_session_maker, get_session
from blupi.models.users import User

if TYPE_CHECKING:
    from clerk_backend_api.models.user import User as ClerkUser
    from sqlmodel.ext.asyncio.session import AsyncSession

logger = get_logger(__name__)
security = HTTPBearer(auto_error=False)
SECURITY_DEP = Depends(security)
SESSION_DEP = Depends(get_session)
LOCAL_AUTH_USER_ID = "local-auth-user"
LOCAL_AUTH_EMAIL = "admin@home.local"
LOCAL_AUTH_NAME = "Local User"


class ClerkTokenPayload(BaseModel):
    """Session token claims; only the subject is required."""

    sub: str


@dataclass
class AuthContext:
    """Authenticated user context resolved from inbound auth headers."""

    actor_type: Literal["user"]
    user: User | None = None


def _extract_bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    value = authorization.strip()
    if not value:
        return None
    if not value.lower().startswith("bearer "):
        return None
    token = value.split(" ", maxsplit=1)[1].strip()
    return token or None


def _non_empty_str(value: object) -> str | None:
    if not isinstance(value, str):
        return None
    cleaned = value.strip()
    return cleaned or None


def _email(value: object) -> str | None:
    text = _non_empty_str(value)
    return text.lower() if text else None


def _joined_name(first: object, last: object) -> str | None:
    parts = [part for part in (_non_empty_str(first), _non_empty_str(last)) if part]
    return " ".join(parts) or None


@dataclass
class ClerkIdentity:
    """Email and display name known for a Clerk user."""

    email: str | None = None
    name: str | None = None

    @classmethod
    def from_claims(cls, claims: dict[str, object]) -> ClerkIdentity:
        emails = [_email(claims.get(key)) for key in ("email", "email_address", "primary_email_address")]
        email = next((value for value in emails if value), None)
        name = (
            _non_empty_str(claims.get("name"))
            or _non_empty_str(claims.get("full_name"))
            or _joined_name(claims.get("given_name"), claims.get("family_name"))
        )
        return cls(email=email, name=name)

    @classmethod
    def from_profile(cls, profile: ClerkUser | None) -> ClerkIdentity:
        if profile is None:
            return cls()
        primary_id = getattr(profile, "primary_email_address_id", None)
        addresses = [
            (getattr(item, "id", None), _email(getattr(item, "email_address", None)))
            for item in getattr(profile, "email_addresses", None) or []
        ]
        primary = [address for item_id, address in addresses if address and item_id == primary_id]
        others = [address for _item_id, address in addresses if address]
        name = _non_empty_str(getattr(profile, "username", None)) or _joined_name(
            getattr(profile, "first_name", None),
            getattr(profile, "last_name", None),
        )
        return cls(email=(primary or others or [None])[0], name=name)

    def merged_with(self, fallback: ClerkIdentity) -> ClerkIdentity:
        return ClerkIdentity(email=self.email or fallback.email, name=self.name or fallback.name)


def _clerk_server_url() -> str | None:
    server_url = (settings.clerk_api_url or "").strip().rstrip("/")
    if not server_url:
        return None
    return server_url if server_url.endswith("/v1") else f"{server_url}/v1"


async def _authenticate_clerk_request(httpx_request: httpx.Request) -> RequestState:
    options = AuthenticateRequestOptions(
        secret_key=settings.clerk_secret_key.strip(),
        clock_skew_in_ms=int(settings.clerk_leeway * 1000),
        accepts_token=["session_token"],
    )
    sdk = Clerk(bearer_auth=options.secret_key or "")
    return await run_in_threadpool(sdk.authenticate_request, httpx_request, options)


def _httpx_request_from_http(request: Request) -> httpx.Request:
    # The Clerk SDK authenticates an httpx.Request; rebuild one from the ASGI request.
    return httpx.Request(request.method, str(request.url), headers=dict(request.headers))


def _httpx_request_from_token(url: str, token: str) -> httpx.Request:
    # Browsers cannot set headers on a WebSocket upgrade; the token arrives as ?token=.
    return httpx.Request("GET", url, headers={"Authorization": f"Bearer {token}"})


async def _fetch_clerk_identity(clerk_user_id: str) -> ClerkIdentity:
    try:
        async with Clerk(
            bearer_auth=settings.clerk_secret_key.strip(),
            server_url=_clerk_server_url(),
            timeout_ms=5000,
        ) as clerk:
            profile = await clerk.users.get_async(user_id=clerk_user_id)
    except (ClerkErrors, SDKError, httpx.HTTPError) as exc:
        logger.warning(
            "auth.clerk.profile.fetch_failed clerk_user_id=%s error_type=%s",
            clerk_user_id[-6:],
            exc.__class__.__name__,
        )
        return ClerkIdentity()
    return ClerkIdentity.from_profile(profile)


async def _sync_clerk_user(
    session: AsyncSession,
    *,
    clerk_user_id: str,
    claims: dict[str, object],
) -> User:
    """Upsert the user row for a Clerk subject and fill missing profile fields."""
    from_claims = ClerkIdentity.from_claims(claims)
    user, created = await crud.get_or_create(
        session,
        User,
        clerk_user_id=clerk_user_id,
        defaults={"email": from_claims.email, "name": from_claims.name},
    )
    identity = from_claims
    # Claims rarely carry the profile; ask Clerk only while a field is missing.
    if created or not user.email or not user.name:
        identity = (await _fetch_clerk_identity(clerk_user_id)).merged_with(from_claims)

    changed = False
    if identity.email and user.email != identity.email:
        user.email = identity.email
        changed = True
    if identity.name and not user.name:
        user.name = identity.name
        changed = True
    if changed:
        user = await crud.save(session, user)
        logger.info("auth.user.synced clerk_user_id=%s", clerk_user_id[-6:])
    return user


async def _accept_pending_invites(session: AsyncSession, user: User) -> None:
    # Only users without an organization context pick up invites implicitly.
    if user.active_organization_id is not None:
        return
    from blupi.services.organizations import accept_pending_invites

    await accept_pending_invites(session, user)


async def _local_user(session: AsyncSession) -> User:
    """The single user behind the shared local token."""
    user, _created = await crud.get_or_create(
        session,
        User,
        clerk_user_id=LOCAL_AUTH_USER_ID,
        defaults={"email": LOCAL_AUTH_EMAIL, "name": LOCAL_AUTH_NAME},
    )
    if not user.email or not user.name:
        user.email = user.email or LOCAL_AUTH_EMAIL
        user.name = user.name or LOCAL_AUTH_NAME
        user = await crud.save(session, user)
    await _accept_pending_invites(session, user)
    return user


def _local_token_matches(token: str | None) -> bool:
    expected = settings.local_auth_token.strip()
    return bool(token and expected and compare_digest(token, expected))


async def _resolve_user(
    session: AsyncSession,
    *,
    token: str | None,
    clerk_request: httpx.Request | None,
) -> User | None:
    """Resolve the signed-in user for either auth mode, or `None`."""
    if settings.auth_mode == AuthMode.LOCAL:
        if not _local_token_matches(token):
            return None
        return await _local_user(session)

    if clerk_request is None:
        return None
    request_state = await _authenticate_clerk_request(clerk_request)
    if request_state.status != AuthStatus.SIGNED_IN or not isinstance(request_state.payload, dict):
        return None
    claims: dict[str, object] = {str(k): v for k, v in request_state.payload.items()}
    try:
        clerk_user_id = ClerkTokenPayload.model_validate(claims).sub
    except ValidationError:
        return None
    if not clerk_user_id:
        return None
    user = await _sync_clerk_user(session, clerk_user_id=clerk_user_id, claims=claims)
    await _accept_pending_invites(session, user)
    return user


async def get_auth_context(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = SECURITY_DEP,
    session: AsyncSession = SESSION_DEP,
) -> AuthContext:
    """Resolve required authenticated user context for the configured auth mode."""
    user = await _resolve_user(
        session,
        token=_extract_bearer_token(request.headers.get("Authorization")),
        clerk_request=_httpx_request_from_http(request),
    )
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)
    return AuthContext(actor_type="user", user=user)


async def get_auth_context_optional(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = SECURITY_DEP,
    session: AsyncSession = SESSION_DEP,
) -> AuthContext | None:
    """Resolve user context if available, otherwise return `None`."""
    token = _extract_bearer_token(request.headers.get("Authorization"))
    if token is None:
        return None
    user = await _resolve_user(
        session,
        token=token,
        clerk_request=_httpx_request_from_http(request),
    )
    if user is None:
        return None
    return AuthContext(actor_type="user", user=user)


async def get_websocket_auth_context(websocket: WebSocket) -> AuthContext | None:
    """Resolve the user of a board channel from its `?token=` query parameter.

    Returns `None` instead of raising so the endpoint can close the socket
    with its own application close code. A short-lived session is used since
    the socket outlives any request scope.
    """
    token = _non_empty_str(websocket.query_params.get("token"))
    if token is None:
        token = _extract_bearer_token(websocket.headers.get("Authorization"))
    if token is None:
        return None
    async with async_session_maker() as session:
        user = await _resolve_user(
            session,
            token=token,
            clerk_request=_httpx_request_from_token(str(websocket.url), token),
        )
    if user is None:
        logger.info("auth.websocket.rejected path=%s", websocket.url.path)
        return None
    return AuthContext(actor_type="user", user=user)
