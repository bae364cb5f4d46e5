"""Reusable FastAPI dependencies for auth, tenancy, and board access.

These dependencies are the policy wiring layer for the API. They:
- resolve the authenticated user and the active organization
- bind a `TenantRepository` to that organization for every tenant query
- load boards for read or write, enforcing the board permission rules

If you're adding a new endpoint, compose from these dependencies instead of
re-implementing permission checks in the router.
"""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID

from fastapi import Depends, HTTPException, status
from starlette.requests import HTTPConnection

from blupi.core.auth import AuthContext, get_auth_context
from blupi.db.session import async_session_maker, get_session
from blupi.models.boards import Board
from blupi.models.organizations import Organization
from blupi.models.users import User
from blupi.realtime.hub import BoardHub
from blupi.services.organizations import (
    OrganizationContext,
    get_active_membership,
    is_org_admin,
)
from blupi.services.tenancy import TenantRepository, can_read_board, require_board_write

if TYPE_CHECKING:
    from sqlmodel.ext.asyncio.session import AsyncSession

    from blupi.realtime.hub import BoardReadCheck

AUTH_DEP = Depends(get_auth_context)
SESSION_DEP = Depends(get_session)
NO_ORG_CONTEXT_DETAIL = "No organization context. Please select an organization."


def require_user(auth: AuthContext = AUTH_DEP) -> User:
    """Return the authenticated user or raise 401."""
    if auth.user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)
    return auth.user


USER_DEP = Depends(require_user)


async def require_org_member(
    user: User = USER_DEP,
    session: AsyncSession = SESSION_DEP,
) -> OrganizationContext:
    """Resolve and require active organization membership for the current user."""
    member = await get_active_membership(session, user)
    if member is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=NO_ORG_CONTEXT_DETAIL,
        )
    organization = await Organization.objects.by_id(member.organization_id).first(session)
    if organization is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=NO_ORG_CONTEXT_DETAIL,
        )
    return OrganizationContext(organization=organization, member=member)


ORG_MEMBER_DEP = Depends(require_org_member)


async def require_org_admin(
    ctx: OrganizationContext = ORG_MEMBER_DEP,
) -> OrganizationContext:
    """Require organization-admin membership privileges."""
    if not is_org_admin(ctx.member):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN)
    return ctx


ORG_ADMIN_DEP = Depends(require_org_admin)


def get_tenant_repository(
    ctx: OrganizationContext = ORG_MEMBER_DEP,
    session: AsyncSession = SESSION_DEP,
) -> TenantRepository:
    """Repository bound to the caller's active organization."""
    return TenantRepository(session, ctx)


TENANT_DEP = Depends(get_tenant_repository)


async def get_board_for_read(
    board_id: UUID,
    repo: TenantRepository = TENANT_DEP,
) -> Board:
    """Load a board of the active organization or raise HTTP 404."""
    return await repo.get_or_404(Board, board_id)


BOARD_READ_DEP = Depends(get_board_for_read)


async def get_board_for_write(
    board: Board = BOARD_READ_DEP,
    repo: TenantRepository = TENANT_DEP,
    user: User = USER_DEP,
) -> Board:
    """Load a board and enforce write access for the caller."""
    await require_board_write(repo.session, board=board, user=user, member=repo.context.member)
    return board


BOARD_WRITE_DEP = Depends(get_board_for_write)


def get_board_hub(connection: HTTPConnection) -> BoardHub:
    """Return the process-wide realtime hub stored on the application."""
    hub = getattr(connection.app.state, "board_hub", None)
    if hub is None:
        hub = BoardHub()
        connection.app.state.board_hub = hub
    return hub


HUB_DEP = Depends(get_board_hub)


async def _board_read_check(board_id: UUID, user_id: UUID) -> bool:
    # One short session per check; channel sockets outlive any request scope.
    async with async_session_maker() as session:
        user = await User.objects.by_id(user_id).first(session)
        if user is None:
            return False
        return await can_read_board(session, board_id=board_id, user=user)


def get_board_read_check() -> BoardReadCheck:
    """Access check used when a realtime client subscribes to a board."""
    return _board_read_check


BOARD_READ_CHECK_DEP = Depends(get_board_read_check)
