"""Organization management endpoints and membership/invite flows."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any
from uuid import UUID

from fastapi import APIRouter, HTTPException, status
from sqlalchemy import func
from sqlmodel import col, select

from blupi.api.deps import HUB_DEP, SESSION_DEP, USER_DEP
from blupi.core.logging import get_logger
from blupi.core.time import utcnow
from blupi.db import crud
from blupi.db.pagination import paginate
from blupi.models.organization_invites import OrganizationInvite
from blupi.models.organization_members import OrganizationMember
from blupi.models.organizations import Organization
from blupi.models.users import User
from blupi.realtime.events import push_notifications
from blupi.schemas.common import OkResponse
from blupi.schemas.organizations import (
    OrganizationCreate,
    OrganizationInviteAccept,
    OrganizationInviteCreate,
    OrganizationInviteRead,
    OrganizationListItem,
    OrganizationMemberRead,
    OrganizationMemberUpdate,
    OrganizationRead,
    OrganizationUpdate,
    OrganizationUserRead,
)
from blupi.schemas.pagination import DefaultLimitOffsetPage
from blupi.services.notifications import build_notification, create_notifications
from blupi.services.organizations import (
    OrganizationContext,
    accept_invite,
    build_invite,
    create_organization,
    get_active_membership,
    get_invite_by_token,
    get_member,
    invite_is_expired,
    is_org_admin,
    normalize_invited_email,
    normalize_role,
    organization_name_taken,
    set_active_organization,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from fastapi_pagination.limit_offset import LimitOffsetPage
    from sqlmodel.ext.asyncio.session import AsyncSession

    from blupi.realtime.hub import BoardHub

router = APIRouter(prefix="/organizations", tags=["organizations"])
logger = get_logger(__name__)


def _member_to_read(
    member: OrganizationMember,
    user: User | None,
) -> OrganizationMemberRead:
    model = OrganizationMemberRead.model_validate(member, from_attributes=True)
    if user is not None:
        model.user = OrganizationUserRead.model_validate(user, from_attributes=True)
    return model


async def _require_membership(
    session: AsyncSession,
    *,
    user: User,
    organization_id: UUID,
    admin: bool = False,
) -> OrganizationContext:
    organization = await Organization.objects.by_id(organization_id).first(session)
    if organization is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)
    member = await get_member(session, user_id=user.id, organization_id=organization_id)
    if member is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="No org access")
    if admin and not is_org_admin(member):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN)
    return OrganizationContext(organization=organization, member=member)


async def _require_org_member(
    session: AsyncSession,
    *,
    organization_id: UUID,
    member_id: UUID,
) -> OrganizationMember:
    member = await OrganizationMember.objects.by_id(member_id).first(session)
    if member is None or member.organization_id != organization_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)
    return member


async def _owner_count(session: AsyncSession, organization_id: UUID) -> int:
    return await OrganizationMember.objects.filter_by(
        organization_id=organization_id,
        role="owner",
    ).count(session)


@router.post("", response_model=OrganizationRead)
async def create_org(
    payload: OrganizationCreate,
    session: AsyncSession = SESSION_DEP,
    user: User = USER_DEP,
) -> OrganizationRead:
    """Create an organization owned by the caller and make it active."""
    if await organization_name_taken(session, payload.name):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="An organization with this name already exists",
        )
    org, _member = await create_organization(session, name=payload.name, owner=user)
    return OrganizationRead.model_validate(org, from_attributes=True)


@router.get("", response_model=list[OrganizationListItem])
async def list_my_organizations(
    session: AsyncSession = SESSION_DEP,
    user: User = USER_DEP,
) -> list[OrganizationListItem]:
    """List organizations where the caller is a member."""
    await get_active_membership(session, user)
    statement = (
        select(Organization, OrganizationMember)
        .join(
            OrganizationMember,
            col(OrganizationMember.organization_id) == col(Organization.id),
        )
        .where(col(OrganizationMember.user_id) == user.id)
        .order_by(func.lower(col(Organization.name)).asc())
    )
    rows = list(await session.exec(statement))
    return [
        OrganizationListItem(
            id=org.id,
            name=org.name,
            slug=org.slug,
            role=member.role,
            is_active=org.id == user.active_organization_id,
        )
        for org, member in rows
    ]


@router.get("/active", response_model=OrganizationRead)
async def get_active_org(
    session: AsyncSession = SESSION_DEP,
    user: User = USER_DEP,
) -> OrganizationRead:
    """Return the caller's active organization."""
    member = await get_active_membership(session, user)
    if member is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)
    org = await Organization.objects.by_id(member.organization_id).first(session)
    if org is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)
    return OrganizationRead.model_validate(org, from_attributes=True)


@router.post("/invites/accept", response_model=OrganizationMemberRead)
async def accept_org_invite(
    payload: OrganizationInviteAccept,
    session: AsyncSession = SESSION_DEP,
    user: User = USER_DEP,
) -> OrganizationMemberRead:
    """Accept an invite token addressed to the caller's email."""
    invite = await get_invite_by_token(session, payload.token)
    if invite is None or invite.accepted_at is not None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)
    if invite_is_expired(invite):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="This invitation has expired",
        )
    if not user.email or normalize_invited_email(invite.invited_email) != normalize_invited_email(
        user.email,
    ):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="This invitation was sent to a different email address",
        )
    member = await accept_invite(session, invite, user)
    return _member_to_read(member, user)


@router.post("/{organization_id}/activate", response_model=OrganizationRead)
async def activate_org(
    organization_id: UUID,
    session: AsyncSession = SESSION_DEP,
    user: User = USER_DEP,
) -> OrganizationRead:
    """Switch the caller's active organization."""
    org = await Organization.objects.by_id(organization_id).first(session)
    if org is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)
    await set_active_organization(session, user=user, organization_id=organization_id)
    logger.info("organization.activated organization_id=%s user_id=%s", org.id, user.id)
    return OrganizationRead.model_validate(org, from_attributes=True)


@router.patch("/{organization_id}", response_model=OrganizationRead)
async def update_org(
    organization_id: UUID,
    payload: OrganizationUpdate,
    session: AsyncSession = SESSION_DEP,
    user: User = USER_DEP,
) -> OrganizationRead:
    """Rename an organization or replace its settings (admins only)."""
    ctx = await _require_membership(
        session,
        user=user,
        organization_id=organization_id,
        admin=True,
    )
    org = ctx.organization
    updates = payload.model_dump(exclude_unset=True)
    name = updates.get("name")
    if name is not None and name.lower() != org.name.lower():
        if await organization_name_taken(session, name):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="An organization with this name already exists",
            )
        org.name = name
    if "settings" in updates:
        org.settings = updates["settings"]
    org.updated_at = utcnow()
    org = await crud.save(session, org)
    return OrganizationRead.model_validate(org, from_attributes=True)


@router.get(
    "/{organization_id}/members",
    response_model=DefaultLimitOffsetPage[OrganizationMemberRead],
)
async def list_org_members(
    organization_id: UUID,
    session: AsyncSession = SESSION_DEP,
    user: User = USER_DEP,
) -> LimitOffsetPage[OrganizationMemberRead]:
    """List members of an organization the caller belongs to."""
    await _require_membership(session, user=user, organization_id=organization_id)
    statement = (
        select(OrganizationMember, User)
        .join(User, col(User.id) == col(OrganizationMember.user_id))
        .where(col(OrganizationMember.organization_id) == organization_id)
        .order_by(func.lower(col(User.email)).asc(), col(User.name).asc())
    )

    def _transform(items: Sequence[Any]) -> Sequence[Any]:
        output: list[OrganizationMemberRead] = []
        for member, member_user in items:
            output.append(_member_to_read(member, member_user))
        return output

    return await paginate(session, statement, transformer=_transform)


@router.patch(
    "/{organization_id}/members/{member_id}",
    response_model=OrganizationMemberRead,
)
async def update_org_member(
    organization_id: UUID,
    member_id: UUID,
    payload: OrganizationMemberUpdate,
    session: AsyncSession = SESSION_DEP,
    user: User = USER_DEP,
) -> OrganizationMemberRead:
    """Change a member's organization role."""
    ctx = await _require_membership(
        session,
        user=user,
        organization_id=organization_id,
        admin=True,
    )
    member = await _require_org_member(
        session,
        organization_id=organization_id,
        member_id=member_id,
    )
    role = normalize_role(payload.role)
    if (member.role == "owner" or role == "owner") and ctx.member.role != "owner":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only owners can change owner roles",
        )
    if member.role == "owner" and role != "owner":
        if await _owner_count(session, organization_id) <= 1:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Organization must have at least one owner",
            )
    member.role = role
    member.updated_at = utcnow()
    member = await crud.save(session, member)
    member_user = await User.objects.by_id(member.user_id).first(session)
    return _member_to_read(member, member_user)


@router.delete("/{organization_id}/members/{member_id}", response_model=OkResponse)
async def remove_org_member(
    organization_id: UUID,
    member_id: UUID,
    session: AsyncSession = SESSION_DEP,
    user: User = USER_DEP,
) -> OkResponse:
    """Remove a member; admins remove others, anyone may leave."""
    ctx = await _require_membership(session, user=user, organization_id=organization_id)
    member = await _require_org_member(
        session,
        organization_id=organization_id,
        member_id=member_id,
    )
    leaving = member.user_id == user.id
    if not leaving and not is_org_admin(ctx.member):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN)
    if member.role == "owner" and not leaving and ctx.member.role != "owner":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only owners can remove owners",
        )
    if member.role == "owner" and await _owner_count(session, organization_id) <= 1:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Organization must have at least one owner",
        )

    member_user = await User.objects.by_id(member.user_id).first(session)
    if member_user is not None and member_user.active_organization_id == organization_id:
        fallback = (
            await OrganizationMember.objects.filter(
                col(OrganizationMember.user_id) == member_user.id,
                col(OrganizationMember.organization_id) != organization_id,
            )
            .order_by(col(OrganizationMember.created_at).asc())
            .first(session)
        )
        member_user.active_organization_id = (
            fallback.organization_id if fallback is not None else None
        )
        session.add(member_user)
    await crud.delete(session, member)
    logger.info(
        "organization.member.removed organization_id=%s member_id=%s",
        organization_id,
        member_id,
    )
    return OkResponse()


@router.get(
    "/{organization_id}/invites",
    response_model=DefaultLimitOffsetPage[OrganizationInviteRead],
)
async def list_org_invites(
    organization_id: UUID,
    session: AsyncSession = SESSION_DEP,
    user: User = USER_DEP,
) -> LimitOffsetPage[OrganizationInviteRead]:
    """List pending invites (admins only)."""
    await _require_membership(session, user=user, organization_id=organization_id, admin=True)
    statement = (
        OrganizationInvite.objects.filter_by(organization_id=organization_id)
        .filter(col(OrganizationInvite.accepted_at).is_(None))
        .order_by(col(OrganizationInvite.created_at).desc())
        .statement
    )
    return await paginate(session, statement)


@router.post("/{organization_id}/invites", response_model=OrganizationInviteRead)
async def create_org_invite(
    organization_id: UUID,
    payload: OrganizationInviteCreate,
    session: AsyncSession = SESSION_DEP,
    user: User = USER_DEP,
    hub: BoardHub = HUB_DEP,
) -> OrganizationInviteRead:
    """Invite an email address; existing users also get an in-app notification."""
    ctx = await _require_membership(
        session,
        user=user,
        organization_id=organization_id,
        admin=True,
    )
    email = normalize_invited_email(payload.invited_email)
    if "@" not in email:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="A valid email address is required",
        )
    if payload.role == "owner" and ctx.member.role != "owner":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only owners can invite owners",
        )

    existing_user = (
        await session.exec(select(User).where(func.lower(col(User.email)) == email))
    ).first()
    if existing_user is not None:
        existing_member = await get_member(
            session,
            user_id=existing_user.id,
            organization_id=organization_id,
        )
        if existing_member is not None:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="This user is already a member of the organization",
            )

    invite = build_invite(
        organization_id=organization_id,
        invited_email=email,
        role=payload.role,
        created_by=user,
    )
    invite = await crud.save(session, invite)
    logger.info(
        "organization.invite.created organization_id=%s invite_id=%s",
        organization_id,
        invite.id,
    )

    if existing_user is not None:
        inviter = user.preferred_name or user.name or user.email or "Someone"
        notifications = await create_notifications(
            session,
            [
                build_notification(
                    to_user_id=existing_user.id,
                    notification_type="team_invitation",
                    title="Team invitation",
                    message=f"{inviter} invited you to join {ctx.organization.name}",
                    organization_id=organization_id,
                    from_user_id=user.id,
                    meta={"invite_token": invite.token, "organization_id": str(organization_id)},
                ),
            ],
        )
        await push_notifications(hub, notifications)
        await session.refresh(invite)
    return OrganizationInviteRead.model_validate(invite, from_attributes=True)
