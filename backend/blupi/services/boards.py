"""Board persistence helpers: read payloads, content writes, and row locking."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import HTTPException, status
from sqlmodel import col

from blupi.core.logging import get_logger
from blupi.core.time import utcnow
from blupi.db import crud
from blupi.models.boards import Board
from blupi.models.flagged_blocks import FlaggedBlock
from blupi.schemas.board_content import new_content_id
from blupi.schemas.boards import BoardPublicRead, BoardRead
from blupi.services import board_content

if TYPE_CHECKING:
    from collections.abc import Callable
    from uuid import UUID

    from sqlmodel.ext.asyncio.session import AsyncSession

    from blupi.services.board_content import BoardDocument

logger = get_logger(__name__)


class BoardVersionConflict(HTTPException):
    """Whole-document save raced with another writer."""

    def __init__(self, current_version: int) -> None:
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "message": "Board was modified by someone else. Reload and try again.",
                "current_version": current_version,
            },
        )
        self.current_version = current_version


def board_document(board: Board) -> BoardDocument:
    return board_content.load_document(board.phases, board.blocks)


def to_board_read(board: Board) -> BoardRead:
    document = board_document(board)
    return BoardRead(
        id=board.id,
        organization_id=board.organization_id,
        project_id=board.project_id,
        created_by_user_id=board.created_by_user_id,
        name=board.name,
        description=board.description,
        segments=board.segments,
        status=board.status,
        phases=document.phases,
        blocks=document.blocks,
        content_version=board.content_version,
        is_public=board.is_public,
        public_role=board.public_role,
        created_at=board.created_at,
        updated_at=board.updated_at,
    )


def to_public_read(board: Board) -> BoardPublicRead:
    document = board_document(board)
    return BoardPublicRead(
        id=board.id,
        name=board.name,
        description=board.description,
        status=board.status,
        phases=document.phases,
        blocks=document.blocks,
        public_role=board.public_role,
        updated_at=board.updated_at,
    )


def store_document(board: Board, document: BoardDocument) -> None:
    """Write a document onto the row and bump its content version.

    New list objects are always assigned so the JSON columns are flagged dirty.
    """
    board.phases = board_content.dump_phases(document)
    board.blocks = board_content.dump_blocks(document)
    board.content_version = (board.content_version or 0) + 1
    board.updated_at = utcnow()


def check_expected_version(board: Board, expected_version: int | None) -> None:
    if expected_version is not None and expected_version != board.content_version:
        logger.info(
            "board.content.version_conflict board_id=%s expected=%s current=%s",
            board.id,
            expected_version,
            board.content_version,
        )
        raise BoardVersionConflict(board.content_version)


async def lock_board(session: AsyncSession, board_id: UUID) -> Board:
    """Re-select a board with a row lock held until the transaction ends."""
    board = await Board.objects.by_id(board_id).for_update().first(session)
    if board is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)
    return board


async def prune_stale_flags(session: AsyncSession, board: Board) -> None:
    """Drop flag rows for blocks that are gone from the stored content.

    Runs inside the caller's transaction; the caller commits.
    """
    block_ids = [block.id for block in board_document(board).blocks]
    await crud.delete_where(
        session,
        FlaggedBlock,
        col(FlaggedBlock.board_id) == board.id,
        col(FlaggedBlock.block_id).not_in(block_ids),
        commit=False,
    )


async def mutate_content(
    session: AsyncSession,
    board: Board,
    change: Callable[[BoardDocument], BoardDocument],
) -> Board:
    """Apply `change` to the latest stored document under a row lock."""
    locked = await lock_board(session, board.id)
    document = change(board_document(locked))
    store_document(locked, document)
    await prune_stale_flags(session, locked)
    session.add(locked)
    await session.commit()
    await session.refresh(locked)
    logger.info(
        "board.content.updated board_id=%s version=%s",
        locked.id,
        locked.content_version,
    )
    return locked


def duplicate_document(document: BoardDocument) -> BoardDocument:
    """Copy a document with fresh phase, column, and block ids."""
    phase_ids: dict[str, str] = {}
    column_ids: dict[str, str] = {}
    phases = []
    for phase in document.phases:
        new_phase_id = new_content_id("phase")
        phase_ids[phase.id] = new_phase_id
        columns = []
        for column in phase.columns:
            new_column_id = new_content_id("column")
            column_ids[column.id] = new_column_id
            columns.append(column.model_copy(update={"id": new_column_id}))
        phases.append(phase.model_copy(update={"id": new_phase_id, "columns": columns}))
    blocks = [
        block.model_copy(
            update={
                "id": new_content_id("block"),
                "phase_id": phase_ids.get(block.phase_id or ""),
                "column_id": column_ids.get(block.column_id or ""),
                "phase_index": None,
                "column_index": None,
            },
        )
        for block in document.blocks
    ]
    return board_content.normalize_document(phases, blocks)
