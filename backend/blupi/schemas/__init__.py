"""Schema exports for API request and response payloads."""

from blupi.schemas.boards import BoardCreate, BoardRead, BoardUpdate
from blupi.schemas.comments import BoardCommentCreate, BoardCommentRead, BoardCommentUpdate
from blupi.schemas.notifications import NotificationRead
from blupi.schemas.organizations import (
    OrganizationCreate,
    OrganizationInviteCreate,
    OrganizationInviteRead,
    OrganizationListItem,
    OrganizationMemberRead,
    OrganizationRead,
)
from blupi.schemas.projects import ProjectCreate, ProjectRead, ProjectUpdate
from blupi.schemas.users import UserRead, UserUpdate

__all__ = [
    "BoardCommentCreate",
    "BoardCommentRead",
    "BoardCommentUpdate",
    "BoardCreate",
    "BoardRead",
    "BoardUpdate",
    "NotificationRead",
    "OrganizationCreate",
    "OrganizationInviteCreate",
    "OrganizationInviteRead",
    "OrganizationListItem",
    "OrganizationMemberRead",
    "OrganizationRead",
    "ProjectCreate",
    "ProjectRead",
    "ProjectUpdate",
    "UserRead",
    "UserUpdate",
]
