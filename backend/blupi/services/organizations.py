"""Organization membership, invitation, and active-context service helpers."""

from __future__ import annotations

import re
import secrets
from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING

from fastapi import HTTPException, status
from sqlalchemy import func
from sqlmodel import col

from blupi.core.config import settings
from blupi.core.logging import get_logger
from blupi.core.time import utcnow
from blupi.models.organization_invites import OrganizationInvite
from blupi.models.organization_members import OrganizationMember
from blupi.models.organizations import Organization
from blupi.models.users import User

if TYPE_CHECKING:
    from uuid import UUID

    from sqlmodel.ext.asyncio.session import AsyncSession

ADMIN_ROLES = {"owner", "admin"}
ROLE_RANK = {"member": 0, "admin": 1, "owner": 2}
_SLUG_STRIP = re.compile(r"[^a-z0-9]+")
logger = get_logger(__name__)


@dataclass(frozen=True)
class OrganizationContext:
    """Resolved organization and membership for the active user."""

    organization: Organization
    member: OrganizationMember


def is_org_admin(member: OrganizationMember) -> bool:
    """Return whether a member has admin-level organization privileges."""
    return member.role in ADMIN_ROLES


def slugify(name: str) -> str:
    """Lowercase, hyphen-separated slug for an organization name."""
    slug = _SLUG_STRIP.sub("-", name.strip().lower()).strip("-")
    return slug or "organization"


async def unique_slug(session: AsyncSession, name: str) -> str:
    """Return a slug for `name` that no other organization uses yet."""
    base = slugify(name)
    candidate = base
    suffix = 2
    while await Organization.objects.filter_by(slug=candidate).exists(session):
        candidate = f"{base}-{suffix}"
        suffix += 1
    return candidate


async def organization_name_taken(session: AsyncSession, name: str) -> bool:
    """Case-insensitive duplicate check on organization names."""
    return await Organization.objects.filter(
        func.lower(col(Organization.name)) == name.strip().lower(),
    ).exists(session)


async def get_member(
    session: AsyncSession,
    *,
    user_id: UUID,
    organization_id: UUID,
) -> OrganizationMember | None:
    """Fetch a membership by user id and organization id."""
    return await OrganizationMember.objects.filter_by(
        user_id=user_id,
        organization_id=organization_id,
    ).first(session)


async def get_first_membership(
    session: AsyncSession,
    user_id: UUID,
) -> OrganizationMember | None:
    """Return the oldest membership for a user, if any."""
    return (
        await OrganizationMember.objects.filter_by(user_id=user_id)
        .order_by(col(OrganizationMember.created_at).asc())
        .first(session)
    )


async def set_active_organization(
    session: AsyncSession,
    *,
    user: User,
    organization_id: UUID,
) -> OrganizationMember:
    """Set a user's active organization and return the membership."""
    member = await get_member(session, user_id=user.id, organization_id=organization_id)
    if member is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="No org access",
        )
    if user.active_organization_id != organization_id:
        user.active_organization_id = organization_id
        user.updated_at = utcnow()
        session.add(user)
        await session.commit()
    return member


async def get_active_membership(
    session: AsyncSession,
    user: User,
) -> OrganizationMember | None:
    """Resolve the user's active membership.

    A stale `active_organization_id` (membership removed) is cleared and the
    oldest remaining membership becomes active. Users with no membership at
    all get `None`.
    """
    if user.active_organization_id:
        member = await get_member(
            session,
            user_id=user.id,
            organization_id=user.active_organization_id,
        )
        if member is not None:
            return member
        user.active_organization_id = None
        session.add(user)
        await session.commit()
    member = await get_first_membership(session, user.id)
    if member is None:
        return None
    await set_active_organization(
        session,
        user=user,
        organization_id=member.organization_id,
    )
    return member


async def create_organization(
    session: AsyncSession,
    *,
    name: str,
    owner: User,
) -> tuple[Organization, OrganizationMember]:
    """Create an organization owned by `owner` and make it their active one."""
    now = utcnow()
    org = Organization(
        name=name.strip(),
        slug=await unique_slug(session, name),
        created_at=now,
        updated_at=now,
    )
    session.add(org)
    await session.flush()
    member = OrganizationMember(
        organization_id=org.id,
        user_id=owner.id,
        role="owner",
        created_at=now,
        updated_at=now,
    )
    owner.active_organization_id = org.id
    owner.updated_at = now
    session.add(member)
    session.add(owner)
    await session.commit()
    await session.refresh(org)
    await session.refresh(member)
    logger.info("organization.created organization_id=%s", org.id)
    return org, member


def normalize_invited_email(email: str) -> str:
    """Normalize an invited email address for storage/comparison."""
    return email.strip().lower()


def normalize_role(role: str) -> str:
    """Normalize a role string and default empty values to `member`."""
    return role.strip().lower() or "member"


def _role_rank(role: str | None) -> int:
    if not role:
        return 0
    return ROLE_RANK.get(role, 0)


def invite_is_expired(invite: OrganizationInvite) -> bool:
    return invite.expires_at is not None and invite.expires_at <= utcnow()


def build_invite(
    *,
    organization_id: UUID,
    invited_email: str,
    role: str,
    created_by: User,
) -> OrganizationInvite:
    """Create (unsaved) an invite with a random token and configured expiry."""
    now = utcnow()
    return OrganizationInvite(
        organization_id=organization_id,
        invited_email=normalize_invited_email(invited_email),
        token=secrets.token_urlsafe(24),
        role=normalize_role(role),
        expires_at=now + timedelta(days=settings.invite_ttl_days),
        created_by_user_id=created_by.id,
        created_at=now,
        updated_at=now,
    )


async def accept_invite(
    session: AsyncSession,
    invite: OrganizationInvite,
    user: User,
) -> OrganizationMember:
    """Accept an invite, creating or upgrading the user's membership."""
    now = utcnow()
    member = await get_member(
        session,
        user_id=user.id,
        organization_id=invite.organization_id,
    )
    if member is None:
        member = OrganizationMember(
            organization_id=invite.organization_id,
            user_id=user.id,
            role=normalize_role(invite.role),
            created_at=now,
            updated_at=now,
        )
    elif _role_rank(normalize_role(invite.role)) > _role_rank(member.role):
        member.role = normalize_role(invite.role)
        member.updated_at = now
    session.add(member)

    invite.accepted_by_user_id = user.id
    invite.accepted_at = now
    invite.updated_at = now
    session.add(invite)
    if user.active_organization_id is None:
        user.active_organization_id = invite.organization_id
        session.add(user)
    await session.commit()
    await session.refresh(member)
    logger.info(
        "organization.invite.accepted organization_id=%s invite_id=%s",
        invite.organization_id,
        invite.id,
    )
    return member


async def accept_pending_invites(
    session: AsyncSession,
    user: User,
) -> list[OrganizationMember]:
    """Accept every unexpired pending invite addressed to the user's email."""
    if not user.email:
        return []
    invites = (
        await OrganizationInvite.objects.filter(
            col(OrganizationInvite.accepted_at).is_(None),
            col(OrganizationInvite.invited_email) == normalize_invited_email(user.email),
        )
        .order_by(col(OrganizationInvite.created_at).asc())
        .all(session)
    )
    return [
        await accept_invite(session, invite, user)
        for invite in invites
        if not invite_is_expired(invite)
    ]


async def get_invite_by_token(
    session: AsyncSession,
    token: str,
) -> OrganizationInvite | None:
    return await OrganizationInvite.objects.filter_by(token=token.strip()).first(session)
