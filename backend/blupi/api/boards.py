"""Board CRUD, per-entity content edits, sharing, tags, and flags.

Endpoint annotations in this module are evaluated at import time (no
postponed annotations) because rate-limited routes are wrapped by slowapi.
"""

from collections.abc import Callable
from typing import Any
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, Request, status
from fastapi_pagination.limit_offset import LimitOffsetPage
from sqlmodel import col
from sqlmodel.ext.asyncio.session import AsyncSession

from blupi.api.deps import (
    BOARD_READ_DEP,
    BOARD_WRITE_DEP,
    HUB_DEP,
    SESSION_DEP,
    TENANT_DEP,
    USER_DEP,
)
from blupi.core.logging import get_logger
from blupi.core.rate_limit import BOARD_UPDATE_LIMIT, limiter
from blupi.core.time import utcnow
from blupi.db import crud
from blupi.db.pagination import paginate
from blupi.models.board_comments import BoardComment
from blupi.models.board_tags import BoardTag
from blupi.models.boards import Board
from blupi.models.flagged_blocks import FlaggedBlock
from blupi.models.organizations import Organization
from blupi.models.projects import Project
from blupi.models.sheet_documents import SheetDocument
from blupi.models.users import User
from blupi.realtime.events import publish_board_updated
from blupi.realtime.hub import BoardHub
from blupi.schemas.board_content import (
    Block,
    BlockPatch,
    ColumnCreate,
    MoveRequest,
    PhaseCreate,
)
from blupi.schemas.boards import (
    BoardCreate,
    BoardDuplicate,
    BoardPublicRead,
    BoardPublicUpdate,
    BoardRead,
    BoardUpdate,
)
from blupi.schemas.common import OkResponse
from blupi.schemas.flags import BlockFlagCreate, FlaggedBlockRead
from blupi.schemas.organizations import OrganizationSettings
from blupi.schemas.pagination import DefaultLimitOffsetPage
from blupi.schemas.projects import WorkStatus
from blupi.schemas.tags import BoardTagCreate, BoardTagRead
from blupi.services import board_content
from blupi.services.board_content import BoardDocument
from blupi.services.boards import (
    board_document,
    check_expected_version,
    duplicate_document,
    lock_board,
    mutate_content,
    prune_stale_flags,
    store_document,
    to_board_read,
    to_public_read,
)
from blupi.services.tenancy import TenantRepository

router = APIRouter(prefix="/boards", tags=["boards"])
logger = get_logger(__name__)
_METADATA_FIELDS = frozenset({"name", "description", "segments", "status", "project_id"})
_NULLABLE_FIELDS = frozenset({"description", "segments", "project_id"})


async def _require_project(repo: TenantRepository, project_id: UUID | None) -> None:
    if project_id is not None:
        await repo.get_or_404(Project, project_id)


async def _apply_content_change(
    session: AsyncSession,
    board: Board,
    user: User,
    hub: BoardHub,
    change: Callable[[BoardDocument], BoardDocument],
) -> BoardRead:
    updated = await mutate_content(session, board, change)
    await publish_board_updated(hub, updated, actor_id=user.id)
    return to_board_read(updated)


def _require_block(document: BoardDocument, block_id: str) -> None:
    if not document.has_block(block_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Block not found")


@router.get("", response_model=DefaultLimitOffsetPage[BoardRead])
async def list_boards(
    project_id: UUID | None = Query(default=None),
    board_status: WorkStatus | None = Query(default=None, alias="status"),
    repo: TenantRepository = TENANT_DEP,
) -> LimitOffsetPage[BoardRead]:
    """List boards of the active organization."""
    query = repo.query(Board)
    if project_id is not None:
        query = query.filter(col(Board.project_id) == project_id)
    if board_status is not None:
        query = query.filter(col(Board.status) == board_status)
    statement = query.order_by(col(Board.updated_at).desc()).statement

    def _transform(items: list[Any]) -> list[Any]:
        return [to_board_read(board) for board in items]

    return await paginate(repo.session, statement, transformer=_transform)


@router.post("", response_model=BoardRead)
async def create_board(
    payload: BoardCreate,
    repo: TenantRepository = TENANT_DEP,
    user: User = USER_DEP,
) -> BoardRead:
    """Create a board in the active organization, optionally with content."""
    await _require_project(repo, payload.project_id)
    document = board_content.replace_document(payload.phases, payload.blocks)
    now = utcnow()
    board = Board(
        organization_id=repo.organization_id,
        project_id=payload.project_id,
        created_by_user_id=user.id,
        name=payload.name,
        description=payload.description,
        segments=payload.segments,
        status=payload.status,
        phases=board_content.dump_phases(document),
        blocks=board_content.dump_blocks(document),
        created_at=now,
        updated_at=now,
    )
    board = await crud.save(repo.session, board)
    logger.info("board.created board_id=%s", board.id)
    return to_board_read(board)


@router.get("/{board_id}", response_model=BoardRead)
async def get_board(board: Board = BOARD_READ_DEP) -> BoardRead:
    """Get one board with placement indices derived from its structure."""
    return to_board_read(board)


@router.patch("/{board_id}", response_model=BoardRead)
@limiter.limit(BOARD_UPDATE_LIMIT)
async def update_board(
    request: Request,
    payload: BoardUpdate,
    board: Board = BOARD_WRITE_DEP,
    repo: TenantRepository = TENANT_DEP,
    user: User = USER_DEP,
    hub: BoardHub = HUB_DEP,
) -> BoardRead:
    """Update board metadata and/or replace its content wholesale.

    Content replacement honors `expected_version`: a stale version yields
    HTTP 409 with the current version so the client can reload.
    """
    updates = payload.model_dump(exclude_unset=True)
    if "project_id" in updates:
        await _require_project(repo, updates["project_id"])
    session = repo.session
    locked = await lock_board(session, board.id)
    content_changed = payload.phases is not None or payload.blocks is not None
    if content_changed:
        check_expected_version(locked, payload.expected_version)
        current = board_document(locked)
        document = board_content.replace_document(
            payload.phases if payload.phases is not None else current.phases,
            payload.blocks if payload.blocks is not None else current.blocks,
        )
        store_document(locked, document)
        await prune_stale_flags(session, locked)
    for key, value in updates.items():
        if key in _METADATA_FIELDS and (value is not None or key in _NULLABLE_FIELDS):
            setattr(locked, key, value)
    locked.updated_at = utcnow()
    locked = await crud.save(session, locked)
    logger.info(
        "board.updated board_id=%s content_changed=%s version=%s",
        locked.id,
        content_changed,
        locked.content_version,
    )
    await publish_board_updated(hub, locked, actor_id=user.id)
    return to_board_read(locked)


@router.delete("/{board_id}", response_model=OkResponse)
async def delete_board(
    board: Board = BOARD_WRITE_DEP,
    session: AsyncSession = SESSION_DEP,
) -> OkResponse:
    """Delete a board and its tags, flags, comments, and sheet documents."""
    for model, column in (
        (BoardTag, BoardTag.board_id),
        (FlaggedBlock, FlaggedBlock.board_id),
        (SheetDocument, SheetDocument.board_id),
    ):
        await crud.delete_where(session, model, col(column) == board.id, commit=False)
    await crud.delete_where(
        session,
        BoardComment,
        col(BoardComment.board_id) == board.id,
        col(BoardComment.parent_id).is_not(None),
        commit=False,
    )
    await crud.delete_where(
        session,
        BoardComment,
        col(BoardComment.board_id) == board.id,
        commit=False,
    )
    await crud.delete(session, board)
    logger.info("board.deleted board_id=%s", board.id)
    return OkResponse()


@router.post("/{board_id}/duplicate", response_model=BoardRead)
async def duplicate_board(
    payload: BoardDuplicate,
    board: Board = BOARD_READ_DEP,
    repo: TenantRepository = TENANT_DEP,
    user: User = USER_DEP,
) -> BoardRead:
    """Copy a board's content into a new board owned by the caller."""
    project_id = payload.project_id if "project_id" in payload.model_fields_set else board.project_id
    await _require_project(repo, project_id)
    document = duplicate_document(board_document(board))
    now = utcnow()
    copy = Board(
        organization_id=repo.organization_id,
        project_id=project_id,
        created_by_user_id=user.id,
        name=payload.name or f"{board.name} (Copy)",
        description=board.description,
        segments=board.segments,
        status="draft",
        phases=board_content.dump_phases(document),
        blocks=board_content.dump_blocks(document),
        created_at=now,
        updated_at=now,
    )
    copy = await crud.save(repo.session, copy)
    logger.info("board.duplicated source_id=%s board_id=%s", board.id, copy.id)
    return to_board_read(copy)


@router.post("/{board_id}/blocks", response_model=BoardRead)
@limiter.limit(BOARD_UPDATE_LIMIT)
async def add_block(
    request: Request,
    payload: Block,
    board: Board = BOARD_WRITE_DEP,
    session: AsyncSession = SESSION_DEP,
    user: User = USER_DEP,
    hub: BoardHub = HUB_DEP,
) -> BoardRead:
    """Add one block without touching the rest of the document."""
    return await _apply_content_change(
        session,
        board,
        user,
        hub,
        lambda document: board_content.add_block(document, payload),
    )


@router.patch("/{board_id}/blocks/{block_id}", response_model=BoardRead)
@limiter.limit(BOARD_UPDATE_LIMIT)
async def update_block(
    request: Request,
    block_id: str,
    payload: BlockPatch,
    board: Board = BOARD_WRITE_DEP,
    session: AsyncSession = SESSION_DEP,
    user: User = USER_DEP,
    hub: BoardHub = HUB_DEP,
) -> BoardRead:
    """Patch one block; concurrent edits to other blocks are preserved."""

    def change(document: BoardDocument) -> BoardDocument:
        _require_block(document, block_id)
        return board_content.update_block(document, block_id, payload)

    return await _apply_content_change(session, board, user, hub, change)


@router.delete("/{board_id}/blocks/{block_id}", response_model=BoardRead)
@limiter.limit(BOARD_UPDATE_LIMIT)
async def remove_block(
    request: Request,
    block_id: str,
    board: Board = BOARD_WRITE_DEP,
    session: AsyncSession = SESSION_DEP,
    user: User = USER_DEP,
    hub: BoardHub = HUB_DEP,
) -> BoardRead:
    """Remove one block and its flag."""

    def change(document: BoardDocument) -> BoardDocument:
        _require_block(document, block_id)
        return board_content.remove_block(document, block_id)

    return await _apply_content_change(session, board, user, hub, change)


@router.post("/{board_id}/phases", response_model=BoardRead)
@limiter.limit(BOARD_UPDATE_LIMIT)
async def add_phase(
    request: Request,
    payload: PhaseCreate,
    board: Board = BOARD_WRITE_DEP,
    session: AsyncSession = SESSION_DEP,
    user: User = USER_DEP,
    hub: BoardHub = HUB_DEP,
) -> BoardRead:
    """Append a phase, or insert it at `position`."""
    return await _apply_content_change(
        session,
        board,
        user,
        hub,
        lambda document: board_content.add_phase(document, payload),
    )


@router.post("/{board_id}/phases/{phase_id}/columns", response_model=BoardRead)
@limiter.limit(BOARD_UPDATE_LIMIT)
async def add_column(
    request: Request,
    phase_id: str,
    payload: ColumnCreate,
    board: Board = BOARD_WRITE_DEP,
    session: AsyncSession = SESSION_DEP,
    user: User = USER_DEP,
    hub: BoardHub = HUB_DEP,
) -> BoardRead:
    """Append a column to a phase, or insert it at `position`."""
    return await _apply_content_change(
        session,
        board,
        user,
        hub,
        lambda document: board_content.add_column(document, phase_id, payload),
    )


@router.post("/{board_id}/phases/{phase_id}/move", response_model=BoardRead)
@limiter.limit(BOARD_UPDATE_LIMIT)
async def move_phase(
    request: Request,
    phase_id: str,
    payload: MoveRequest,
    board: Board = BOARD_WRITE_DEP,
    session: AsyncSession = SESSION_DEP,
    user: User = USER_DEP,
    hub: BoardHub = HUB_DEP,
) -> BoardRead:
    """Reorder a phase; blocks keep their phase and column ids."""
    return await _apply_content_change(
        session,
        board,
        user,
        hub,
        lambda document: board_content.move_phase(document, phase_id, payload.position),
    )


@router.post(
    "/{board_id}/phases/{phase_id}/columns/{column_id}/move",
    response_model=BoardRead,
)
@limiter.limit(BOARD_UPDATE_LIMIT)
async def move_column(
    request: Request,
    phase_id: str,
    column_id: str,
    payload: MoveRequest,
    board: Board = BOARD_WRITE_DEP,
    session: AsyncSession = SESSION_DEP,
    user: User = USER_DEP,
    hub: BoardHub = HUB_DEP,
) -> BoardRead:
    """Reorder a column inside its phase."""
    return await _apply_content_change(
        session,
        board,
        user,
        hub,
        lambda document: board_content.move_column(
            document,
            phase_id,
            column_id,
            payload.position,
        ),
    )


@router.delete("/{board_id}/phases/{phase_id}", response_model=BoardRead)
@limiter.limit(BOARD_UPDATE_LIMIT)
async def remove_phase(
    request: Request,
    phase_id: str,
    remove_blocks: bool = Query(default=True),
    board: Board = BOARD_WRITE_DEP,
    session: AsyncSession = SESSION_DEP,
    user: User = USER_DEP,
    hub: BoardHub = HUB_DEP,
) -> BoardRead:
    """Delete a phase; with `remove_blocks=false` a non-empty phase is rejected."""
    return await _apply_content_change(
        session,
        board,
        user,
        hub,
        lambda document: board_content.remove_phase(
            document,
            phase_id,
            remove_blocks=remove_blocks,
        ),
    )


@router.delete("/{board_id}/phases/{phase_id}/columns/{column_id}", response_model=BoardRead)
@limiter.limit(BOARD_UPDATE_LIMIT)
async def remove_column(
    request: Request,
    phase_id: str,
    column_id: str,
    remove_blocks: bool = Query(default=True),
    board: Board = BOARD_WRITE_DEP,
    session: AsyncSession = SESSION_DEP,
    user: User = USER_DEP,
    hub: BoardHub = HUB_DEP,
) -> BoardRead:
    """Delete a column; with `remove_blocks=false` a non-empty column is rejected."""
    return await _apply_content_change(
        session,
        board,
        user,
        hub,
        lambda document: board_content.remove_column(
            document,
            phase_id,
            column_id,
            remove_blocks=remove_blocks,
        ),
    )


@router.get("/{board_id}/public", response_model=BoardPublicRead)
async def get_public_board(
    board_id: UUID,
    session: AsyncSession = SESSION_DEP,
) -> BoardPublicRead:
    """Read-only board view for unauthenticated visitors."""
    board = await Board.objects.by_id(board_id).first(session)
    if board is None or not board.is_public:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)
    return to_public_read(board)


@router.patch("/{board_id}/public", response_model=BoardRead)
async def update_board_sharing(
    payload: BoardPublicUpdate,
    board: Board = BOARD_WRITE_DEP,
    repo: TenantRepository = TENANT_DEP,
) -> BoardRead:
    """Toggle public read access; turning it off resets the role to viewer."""
    if payload.is_public:
        org: Organization = repo.context.organization
        org_settings = OrganizationSettings.model_validate(org.settings or {})
        if not org_settings.allow_public_boards:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Public boards are disabled for this organization",
            )
        board.is_public = True
        board.public_role = payload.public_role or board.public_role
    else:
        board.is_public = False
        board.public_role = "viewer"
    board.updated_at = utcnow()
    board = await crud.save(repo.session, board)
    logger.info("board.sharing.updated board_id=%s is_public=%s", board.id, board.is_public)
    return to_board_read(board)


@router.get("/{board_id}/tags", response_model=list[BoardTagRead])
async def list_board_tags(
    board: Board = BOARD_READ_DEP,
    session: AsyncSession = SESSION_DEP,
) -> list[BoardTagRead]:
    """List the tags of a board."""
    tags = (
        await BoardTag.objects.filter_by(board_id=board.id)
        .order_by(col(BoardTag.name).asc())
        .all(session)
    )
    return [BoardTagRead.model_validate(tag, from_attributes=True) for tag in tags]


@router.post("/{board_id}/tags", response_model=BoardTagRead)
async def add_board_tag(
    payload: BoardTagCreate,
    board: Board = BOARD_WRITE_DEP,
    session: AsyncSession = SESSION_DEP,
) -> BoardTagRead:
    """Attach a tag to a board; names are unique per board."""
    if await BoardTag.objects.filter_by(board_id=board.id, name=payload.name).exists(session):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="This board already has a tag with that name",
        )
    tag = await crud.save(
        session,
        BoardTag(board_id=board.id, name=payload.name, color=payload.color),
    )
    return BoardTagRead.model_validate(tag, from_attributes=True)


@router.delete("/{board_id}/tags/{tag_id}", response_model=OkResponse)
async def remove_board_tag(
    tag_id: UUID,
    board: Board = BOARD_WRITE_DEP,
    session: AsyncSession = SESSION_DEP,
) -> OkResponse:
    """Remove a tag from a board."""
    tag = await BoardTag.objects.by_id(tag_id).first(session)
    if tag is None or tag.board_id != board.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)
    await crud.delete(session, tag)
    return OkResponse()


async def _set_block_flag(
    session: AsyncSession,
    board: Board,
    user: User,
    hub: BoardHub,
    block_id: str,
    *,
    flagged: bool,
) -> None:
    def change(document: BoardDocument) -> BoardDocument:
        _require_block(document, block_id)
        return board_content.update_block(document, block_id, BlockPatch(flagged=flagged))

    updated = await mutate_content(session, board, change)
    await publish_board_updated(hub, updated, actor_id=user.id)


@router.post("/{board_id}/blocks/{block_id}/flag", response_model=FlaggedBlockRead)
async def flag_block(
    block_id: str,
    payload: BlockFlagCreate,
    board: Board = BOARD_READ_DEP,
    session: AsyncSession = SESSION_DEP,
    user: User = USER_DEP,
    hub: BoardHub = HUB_DEP,
) -> FlaggedBlockRead:
    """Flag a block for follow-up; any organization member may flag."""
    _require_block(board_document(board), block_id)
    flag, created = await crud.get_or_create(
        session,
        FlaggedBlock,
        board_id=board.id,
        block_id=block_id,
        defaults={"flagged_by_user_id": user.id, "reason": payload.reason},
    )
    if created:
        await _set_block_flag(session, board, user, hub, block_id, flagged=True)
        await session.refresh(flag)
    return FlaggedBlockRead.model_validate(flag, from_attributes=True)


@router.post("/{board_id}/blocks/{block_id}/unflag", response_model=OkResponse)
async def unflag_block(
    block_id: str,
    board: Board = BOARD_READ_DEP,
    session: AsyncSession = SESSION_DEP,
    user: User = USER_DEP,
    hub: BoardHub = HUB_DEP,
) -> OkResponse:
    """Clear a block's flag."""
    flag = await FlaggedBlock.objects.filter_by(board_id=board.id, block_id=block_id).first(
        session,
    )
    if flag is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)
    await crud.delete(session, flag)
    if board_document(board).has_block(block_id):
        await _set_block_flag(session, board, user, hub, block_id, flagged=False)
    return OkResponse()


@router.get("/{board_id}/flags", response_model=list[FlaggedBlockRead])
async def list_flagged_blocks(
    board: Board = BOARD_READ_DEP,
    session: AsyncSession = SESSION_DEP,
) -> list[FlaggedBlockRead]:
    """List flagged blocks of a board, newest first."""
    flags = (
        await FlaggedBlock.objects.filter_by(board_id=board.id)
        .order_by(col(FlaggedBlock.created_at).desc())
        .all(session)
    )
    return [FlaggedBlockRead.model_validate(flag, from_attributes=True) for flag in flags]
