"""Project CRUD endpoints and project membership flows."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any
from uuid import UUID

from fastapi import APIRouter, HTTPException, status
from sqlalchemy import func, update
from sqlmodel import col, select

from blupi.api.deps import HUB_DEP, SESSION_DEP, TENANT_DEP, USER_DEP
from blupi.core.logging import get_logger
from blupi.core.time import utcnow
from blupi.db import crud
from blupi.db.pagination import paginate
from blupi.models.boards import Board
from blupi.models.project_members import ProjectMember
from blupi.models.projects import Project
from blupi.models.users import User
from blupi.realtime.events import push_notifications
from blupi.schemas.boards import BoardRead
from blupi.schemas.common import OkResponse
from blupi.schemas.pagination import DefaultLimitOffsetPage
from blupi.schemas.projects import (
    ProjectCreate,
    ProjectInvite,
    ProjectMemberRead,
    ProjectMemberUpdate,
    ProjectRead,
    ProjectUpdate,
)
from blupi.services.boards import to_board_read
from blupi.services.notifications import build_notification, create_notifications
from blupi.services.organizations import get_member, is_org_admin, normalize_invited_email
from blupi.services.tenancy import get_project_membership

if TYPE_CHECKING:
    from collections.abc import Sequence

    from fastapi_pagination.limit_offset import LimitOffsetPage
    from sqlmodel.ext.asyncio.session import AsyncSession

    from blupi.realtime.hub import BoardHub
    from blupi.services.tenancy import TenantRepository

router = APIRouter(prefix="/projects", tags=["projects"])
logger = get_logger(__name__)


def _project_read(project: Project, board_count: int = 0) -> ProjectRead:
    model = ProjectRead.model_validate(project, from_attributes=True)
    model.board_count = board_count
    return model


def _member_read(member: ProjectMember, user: User | None) -> ProjectMemberRead:
    model = ProjectMemberRead.model_validate(member, from_attributes=True)
    if user is not None:
        model.email = user.email
        model.name = user.preferred_name or user.name
    return model


async def _board_count(session: AsyncSession, project_id: UUID) -> int:
    return await Board.objects.filter_by(project_id=project_id).count(session)


async def _require_project_manager(
    repo: TenantRepository,
    project: Project,
    user: User,
) -> None:
    if is_org_admin(repo.context.member) or project.created_by_user_id == user.id:
        return
    membership = await get_project_membership(
        repo.session,
        project_id=project.id,
        user_id=user.id,
    )
    if membership is None or membership.status != "active" or membership.role != "admin":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN)


@router.get("", response_model=DefaultLimitOffsetPage[ProjectRead])
async def list_projects(
    repo: TenantRepository = TENANT_DEP,
) -> LimitOffsetPage[ProjectRead]:
    """List projects of the active organization with their board counts."""
    statement = (
        select(Project, func.count(col(Board.id)))
        .outerjoin(Board, col(Board.project_id) == col(Project.id))
        .where(col(Project.organization_id) == repo.organization_id)
        .group_by(col(Project.id))
        .order_by(col(Project.updated_at).desc())
    )

    def _transform(items: Sequence[Any]) -> Sequence[Any]:
        return [_project_read(project, count) for project, count in items]

    return await paginate(repo.session, statement, transformer=_transform)


@router.post("", response_model=ProjectRead)
async def create_project(
    payload: ProjectCreate,
    repo: TenantRepository = TENANT_DEP,
    user: User = USER_DEP,
) -> ProjectRead:
    """Create a project in the active organization; the creator becomes its admin."""
    now = utcnow()
    project = Project(
        **payload.model_dump(),
        organization_id=repo.organization_id,
        created_by_user_id=user.id,
        created_at=now,
        updated_at=now,
    )
    repo.session.add(project)
    await repo.session.flush()
    repo.session.add(
        ProjectMember(
            project_id=project.id,
            user_id=user.id,
            role="admin",
            status="active",
            created_at=now,
            updated_at=now,
        ),
    )
    await repo.session.commit()
    await repo.session.refresh(project)
    logger.info("project.created project_id=%s", project.id)
    return _project_read(project)


@router.get("/{project_id}", response_model=ProjectRead)
async def get_project(
    project_id: UUID,
    repo: TenantRepository = TENANT_DEP,
) -> ProjectRead:
    """Get a project of the active organization."""
    project = await repo.get_or_404(Project, project_id)
    return _project_read(project, await _board_count(repo.session, project.id))


@router.patch("/{project_id}", response_model=ProjectRead)
async def update_project(
    project_id: UUID,
    payload: ProjectUpdate,
    repo: TenantRepository = TENANT_DEP,
    user: User = USER_DEP,
) -> ProjectRead:
    """Update project metadata."""
    project = await repo.get_or_404(Project, project_id)
    await _require_project_manager(repo, project, user)
    updates = payload.model_dump(exclude_unset=True, exclude_none=True)
    for key, value in updates.items():
        setattr(project, key, value)
    project.updated_at = utcnow()
    project = await crud.save(repo.session, project)
    return _project_read(project, await _board_count(repo.session, project.id))


@router.delete("/{project_id}", response_model=OkResponse)
async def delete_project(
    project_id: UUID,
    repo: TenantRepository = TENANT_DEP,
    user: User = USER_DEP,
) -> OkResponse:
    """Delete a project; its boards stay in the organization without a project."""
    project = await repo.get_or_404(Project, project_id)
    await _require_project_manager(repo, project, user)
    await repo.session.execute(
        update(Board)
        .where(col(Board.project_id) == project.id)
        .values(project_id=None, updated_at=utcnow()),
    )
    await crud.delete_where(
        repo.session,
        ProjectMember,
        col(ProjectMember.project_id) == project.id,
        commit=False,
    )
    await crud.delete(repo.session, project)
    logger.info("project.deleted project_id=%s", project_id)
    return OkResponse()


@router.get("/{project_id}/boards", response_model=list[BoardRead])
async def list_project_boards(
    project_id: UUID,
    repo: TenantRepository = TENANT_DEP,
) -> list[BoardRead]:
    """List the boards attached to a project."""
    project = await repo.get_or_404(Project, project_id)
    boards = (
        await repo.query(Board)
        .filter(col(Board.project_id) == project.id)
        .order_by(col(Board.updated_at).desc())
        .all(repo.session)
    )
    return [to_board_read(board) for board in boards]


@router.get("/{project_id}/members", response_model=list[ProjectMemberRead])
async def list_project_members(
    project_id: UUID,
    repo: TenantRepository = TENANT_DEP,
) -> list[ProjectMemberRead]:
    """List project members, pending invitations included."""
    project = await repo.get_or_404(Project, project_id)
    statement = (
        select(ProjectMember, User)
        .join(User, col(User.id) == col(ProjectMember.user_id))
        .where(col(ProjectMember.project_id) == project.id)
        .order_by(col(ProjectMember.created_at).asc())
    )
    rows = list(await repo.session.exec(statement))
    return [_member_read(member, member_user) for member, member_user in rows]


@router.post("/{project_id}/invite", response_model=ProjectMemberRead)
async def invite_project_member(
    project_id: UUID,
    payload: ProjectInvite,
    repo: TenantRepository = TENANT_DEP,
    user: User = USER_DEP,
    hub: BoardHub = HUB_DEP,
) -> ProjectMemberRead:
    """Share a project with an organization member by email."""
    project = await repo.get_or_404(Project, project_id)
    await _require_project_manager(repo, project, user)
    email = normalize_invited_email(payload.email)
    invitee = (
        await repo.session.exec(select(User).where(func.lower(col(User.email)) == email))
    ).first()
    if invitee is None or (
        await get_member(
            repo.session,
            user_id=invitee.id,
            organization_id=repo.organization_id,
        )
        is None
    ):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Only members of this organization can be added to the project",
        )
    if await get_project_membership(repo.session, project_id=project.id, user_id=invitee.id):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="This user is already on the project",
        )
    now = utcnow()
    member = await crud.save(
        repo.session,
        ProjectMember(
            project_id=project.id,
            user_id=invitee.id,
            role=payload.role,
            status="pending",
            invited_by_user_id=user.id,
            created_at=now,
            updated_at=now,
        ),
    )
    inviter = user.preferred_name or user.name or user.email or "Someone"
    notifications = await create_notifications(
        repo.session,
        [
            build_notification(
                to_user_id=invitee.id,
                notification_type="project_shared",
                title="Project shared with you",
                message=f'{inviter} shared the project "{project.name}" with you',
                organization_id=repo.organization_id,
                from_user_id=user.id,
                meta={"project_id": str(project.id), "role": payload.role},
            ),
        ],
    )
    await push_notifications(hub, notifications)
    await repo.session.refresh(member)
    logger.info("project.member.invited project_id=%s user_id=%s", project.id, invitee.id)
    return _member_read(member, invitee)


@router.patch("/{project_id}/members/{member_id}", response_model=ProjectMemberRead)
async def update_project_member(
    project_id: UUID,
    member_id: UUID,
    payload: ProjectMemberUpdate,
    repo: TenantRepository = TENANT_DEP,
    user: User = USER_DEP,
) -> ProjectMemberRead:
    """Change a project member's role or status."""
    project = await repo.get_or_404(Project, project_id)
    await _require_project_manager(repo, project, user)
    member = await ProjectMember.objects.by_id(member_id).first(repo.session)
    if member is None or member.project_id != project.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)
    updates = payload.model_dump(exclude_unset=True, exclude_none=True)
    for key, value in updates.items():
        setattr(member, key, value)
    member.updated_at = utcnow()
    member = await crud.save(repo.session, member)
    member_user = await User.objects.by_id(member.user_id).first(repo.session)
    return _member_read(member, member_user)


@router.post("/{project_id}/accept", response_model=ProjectMemberRead)
async def accept_project_invite(
    project_id: UUID,
    repo: TenantRepository = TENANT_DEP,
    user: User = USER_DEP,
) -> ProjectMemberRead:
    """Accept the caller's pending project invitation."""
    project = await repo.get_or_404(Project, project_id)
    member = await get_project_membership(repo.session, project_id=project.id, user_id=user.id)
    if member is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)
    if member.status != "active":
        member.status = "active"
        member.updated_at = utcnow()
        member = await crud.save(repo.session, member)
    return _member_read(member, user)
