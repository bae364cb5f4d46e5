"""Model exports for SQLAlchemy/SQLModel metadata discovery."""

from blupi.models.board_comments import BoardComment
from blupi.models.board_tags import BoardTag
from blupi.models.boards import Board
from blupi.models.flagged_blocks import FlaggedBlock
from blupi.models.notifications import Notification
from blupi.models.organization_invites import OrganizationInvite
from blupi.models.organization_members import OrganizationMember
from blupi.models.organizations import Organization
from blupi.models.project_members import ProjectMember
from blupi.models.projects import Project
from blupi.models.sheet_documents import SheetDocument
from blupi.models.users import User

__all__ = [
    "Board",
    "BoardComment",
    "BoardTag",
    "FlaggedBlock",
    "Notification",
    "Organization",
    "OrganizationInvite",
    "OrganizationMember",
    "Project",
    "ProjectMember",
    "SheetDocument",
    "User",
]
