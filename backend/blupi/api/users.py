"""Current-user profile endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter

from blupi.api.deps import SESSION_DEP, USER_DEP
from blupi.core.time import utcnow
from blupi.db import crud
from blupi.schemas.users import UserRead, UserUpdate

if TYPE_CHECKING:
    from sqlmodel.ext.asyncio.session import AsyncSession

    from blupi.models.users import User

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/me", response_model=UserRead)
async def get_me(user: User = USER_DEP) -> UserRead:
    """Return the authenticated user's profile."""
    return UserRead.model_validate(user, from_attributes=True)


@router.patch("/me", response_model=UserRead)
async def update_me(
    payload: UserUpdate,
    session: AsyncSession = SESSION_DEP,
    user: User = USER_DEP,
) -> UserRead:
    """Update display name, preferred name, or avatar of the caller."""
    updates = payload.model_dump(exclude_unset=True)
    for key, value in updates.items():
        setattr(user, key, value.strip() if isinstance(value, str) else value)
    user.updated_at = utcnow()
    user = await crud.save(session, user)
    return UserRead.model_validate(user, from_attributes=True)
