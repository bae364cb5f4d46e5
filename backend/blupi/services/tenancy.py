"""Tenant-scoped data access and board permission rules.

Every API query for tenant rows goes through a `TenantRepository`, which is
bound to the caller's active organization and adds the `organization_id`
filter itself. Rows owned by another organization are therefore invisible
and surface as 404 rather than 403.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, TypeVar

from fastapi import HTTPException, status
from sqlmodel import col

from blupi.models.boards import Board
from blupi.models.project_members import ProjectMember
from blupi.models.tenancy import TenantScoped
from blupi.services.organizations import get_member, is_org_admin

if TYPE_CHECKING:
    from uuid import UUID

    from sqlmodel.ext.asyncio.session import AsyncSession

    from blupi.db.queryset import QuerySet
    from blupi.models.organization_members import OrganizationMember
    from blupi.models.users import User
    from blupi.services.organizations import OrganizationContext

TenantT = TypeVar("TenantT", bound=TenantScoped)
PROJECT_WRITE_ROLES = {"editor", "admin"}


class TenantRepository:
    """Query entry point bound to one organization."""

    def __init__(self, session: AsyncSession, context: OrganizationContext) -> None:
        self.session = session
        self.context = context

    @property
    def organization_id(self) -> UUID:
        return self.context.organization.id

    def query(self, model: type[TenantT]) -> QuerySet[TenantT]:
        """Return a queryset already filtered to the bound organization."""
        return model.scoped(self.organization_id)

    async def get(self, model: type[TenantT], obj_id: UUID) -> TenantT | None:
        return await self.query(model).filter(col(getattr(model, "id")) == obj_id).first(
            self.session,
        )

    async def get_or_404(self, model: type[TenantT], obj_id: UUID) -> TenantT:
        obj = await self.get(model, obj_id)
        if obj is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)
        return obj


async def get_project_membership(
    session: AsyncSession,
    *,
    project_id: UUID,
    user_id: UUID,
) -> ProjectMember | None:
    return await ProjectMember.objects.filter_by(
        project_id=project_id,
        user_id=user_id,
    ).first(session)


async def can_write_board(
    session: AsyncSession,
    *,
    board: Board,
    user: User,
    member: OrganizationMember,
) -> bool:
    """Return whether an organization member may change a board.

    Org admins and the board creator always may. For boards inside a project,
    other members need an active editor/admin project membership; boards
    outside any project are writable by every member of the organization.
    """
    if member.organization_id != board.organization_id:
        return False
    if is_org_admin(member) or board.created_by_user_id == user.id:
        return True
    if board.project_id is None:
        return True
    project_member = await get_project_membership(
        session,
        project_id=board.project_id,
        user_id=user.id,
    )
    return (
        project_member is not None
        and project_member.status == "active"
        and project_member.role in PROJECT_WRITE_ROLES
    )


async def require_board_write(
    session: AsyncSession,
    *,
    board: Board,
    user: User,
    member: OrganizationMember,
) -> None:
    if not await can_write_board(session, board=board, user=user, member=member):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Board access denied",
        )


async def can_read_board(session: AsyncSession, *, board_id: UUID, user: User) -> bool:
    """Return whether `user` belongs to the organization owning `board_id`.

    Used by the realtime channel, where the board is named by the client and
    need not be in the caller's active organization.
    """
    board = await Board.objects.by_id(board_id).first(session)
    if board is None:
        return False
    member = await get_member(
        session,
        user_id=user.id,
        organization_id=board.organization_id,
    )
    return member is not None
