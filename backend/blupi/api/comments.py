"""Board comment threads and mention notifications."""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status
from sqlmodel import col, select

from blupi.api.deps import BOARD_READ_DEP, HUB_DEP, TENANT_DEP, USER_DEP
from blupi.core.logging import get_logger
from blupi.core.time import utcnow
from blupi.db import crud
from blupi.models.board_comments import BoardComment
from blupi.models.organization_members import OrganizationMember
from blupi.models.users import User
from blupi.realtime.events import push_notifications
from blupi.schemas.comments import BoardCommentCreate, BoardCommentRead, BoardCommentUpdate
from blupi.schemas.common import OkResponse
from blupi.services.boards import board_document
from blupi.services.notifications import build_notification, create_notifications
from blupi.services.organizations import is_org_admin
from blupi.services.tenancy import can_write_board

if TYPE_CHECKING:
    from blupi.models.boards import Board
    from blupi.realtime.hub import BoardHub
    from blupi.services.tenancy import TenantRepository

router = APIRouter(prefix="/boards", tags=["comments"])
logger = get_logger(__name__)
_PREVIEW_LENGTH = 120


def _comment_read(comment: BoardComment, author: User | None) -> BoardCommentRead:
    model = BoardCommentRead.model_validate(comment, from_attributes=True)
    if author is not None:
        model.author_name = author.preferred_name or author.name
        model.author_email = author.email
    return model


async def _require_comment(
    repo: TenantRepository,
    board: Board,
    comment_id: UUID,
) -> BoardComment:
    comment = await BoardComment.objects.by_id(comment_id).first(repo.session)
    if comment is None or comment.board_id != board.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)
    return comment


async def _mentioned_members(
    repo: TenantRepository,
    user_ids: list[UUID],
    *,
    author_id: UUID,
) -> list[UUID]:
    candidates = {user_id for user_id in user_ids if user_id != author_id}
    if not candidates:
        return []
    members = (
        await OrganizationMember.objects.filter_by(organization_id=repo.organization_id)
        .filter(col(OrganizationMember.user_id).in_(candidates))
        .all(repo.session)
    )
    return sorted({member.user_id for member in members}, key=str)


@router.get("/{board_id}/comments", response_model=list[BoardCommentRead])
async def list_comments(
    block_id: str | None = Query(default=None),
    board: Board = BOARD_READ_DEP,
    repo: TenantRepository = TENANT_DEP,
) -> list[BoardCommentRead]:
    """List comments of a board in posting order, optionally for one block."""
    statement = (
        select(BoardComment, User)
        .join(User, col(User.id) == col(BoardComment.user_id))
        .where(col(BoardComment.board_id) == board.id)
        .order_by(col(BoardComment.created_at).asc())
    )
    if block_id is not None:
        statement = statement.where(col(BoardComment.block_id) == block_id)
    rows = list(await repo.session.exec(statement))
    return [_comment_read(comment, author) for comment, author in rows]


@router.post("/{board_id}/comments", response_model=BoardCommentRead)
async def create_comment(
    payload: BoardCommentCreate,
    board: Board = BOARD_READ_DEP,
    repo: TenantRepository = TENANT_DEP,
    user: User = USER_DEP,
    hub: BoardHub = HUB_DEP,
) -> BoardCommentRead:
    """Post a comment; mentioned organization members are notified."""
    if payload.block_id is not None and not board_document(board).has_block(payload.block_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Block not found")
    if payload.parent_id is not None:
        await _require_comment(repo, board, payload.parent_id)

    mentioned = await _mentioned_members(repo, payload.mentions, author_id=user.id)
    now = utcnow()
    comment = await crud.save(
        repo.session,
        BoardComment(
            board_id=board.id,
            block_id=payload.block_id,
            user_id=user.id,
            parent_id=payload.parent_id,
            content=payload.content,
            mentions=[str(user_id) for user_id in payload.mentions],
            created_at=now,
            updated_at=now,
        ),
    )
    logger.info("board.comment.created board_id=%s comment_id=%s", board.id, comment.id)

    if mentioned:
        author = user.preferred_name or user.name or user.email or "Someone"
        preview = comment.content[:_PREVIEW_LENGTH]
        notifications = await create_notifications(
            repo.session,
            [
                build_notification(
                    to_user_id=user_id,
                    notification_type="comment_mention",
                    title=f"{author} mentioned you",
                    message=f'On "{board.name}": {preview}',
                    organization_id=repo.organization_id,
                    from_user_id=user.id,
                    meta={
                        "board_id": str(board.id),
                        "comment_id": str(comment.id),
                        "block_id": comment.block_id,
                    },
                )
                for user_id in mentioned
            ],
        )
        await push_notifications(hub, notifications)
        await repo.session.refresh(comment)
    return _comment_read(comment, user)


@router.patch("/{board_id}/comments/{comment_id}", response_model=BoardCommentRead)
async def update_comment(
    comment_id: UUID,
    payload: BoardCommentUpdate,
    board: Board = BOARD_READ_DEP,
    repo: TenantRepository = TENANT_DEP,
    user: User = USER_DEP,
) -> BoardCommentRead:
    """Edit comment text (author only) or toggle resolution (board writers)."""
    comment = await _require_comment(repo, board, comment_id)
    updates = payload.model_dump(exclude_unset=True, exclude_none=True)
    if "content" in updates:
        if comment.user_id != user.id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Only the author can edit this comment",
            )
        comment.content = updates["content"]
    if "resolved" in updates:
        allowed = comment.user_id == user.id or await can_write_board(
            repo.session,
            board=board,
            user=user,
            member=repo.context.member,
        )
        if not allowed:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN)
        comment.resolved = updates["resolved"]
    comment.updated_at = utcnow()
    comment = await crud.save(repo.session, comment)
    author = await User.objects.by_id(comment.user_id).first(repo.session)
    return _comment_read(comment, author)


@router.delete("/{board_id}/comments/{comment_id}", response_model=OkResponse)
async def delete_comment(
    comment_id: UUID,
    board: Board = BOARD_READ_DEP,
    repo: TenantRepository = TENANT_DEP,
    user: User = USER_DEP,
) -> OkResponse:
    """Delete a comment and its replies (author or organization admin)."""
    comment = await _require_comment(repo, board, comment_id)
    if comment.user_id != user.id and not is_org_admin(repo.context.member):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN)
    await crud.delete_where(
        repo.session,
        BoardComment,
        col(BoardComment.parent_id) == comment.id,
        commit=False,
    )
    await crud.delete(repo.session, comment)
    return OkResponse()
