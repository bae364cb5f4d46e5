"""CSV and PDF imports into new or existing boards.

Endpoint annotations in this module are evaluated at import time (no
postponed annotations) because rate-limited routes are wrapped by slowapi.
"""

from fastapi import APIRouter, File, Form, Request, UploadFile

from blupi.api.deps import BOARD_WRITE_DEP, HUB_DEP, TENANT_DEP, USER_DEP
from blupi.core.errors import ImportFormatError
from blupi.core.logging import get_logger
from blupi.core.rate_limit import IMPORT_LIMIT, limiter
from blupi.core.time import utcnow
from blupi.db import crud
from blupi.imports.csv_funnel import CsvImportResult, import_csv
from blupi.imports.pdf_workflow import append_workflow, parse_workflow_pdf
from blupi.models.boards import Board
from blupi.models.projects import Project
from blupi.models.users import User
from blupi.realtime.events import publish_board_updated
from blupi.realtime.hub import BoardHub
from blupi.schemas.boards import BoardRead
from blupi.schemas.imports import (
    BoardImportRead,
    CsvBoardImport,
    CsvContentImport,
    CsvLayout,
    ImportSummary,
)
from blupi.services import board_content
from blupi.services.boards import (
    check_expected_version,
    lock_board,
    mutate_content,
    prune_stale_flags,
    store_document,
    to_board_read,
)
from blupi.services.tenancy import TenantRepository

router = APIRouter(tags=["imports"])
logger = get_logger(__name__)


def _summary(result: CsvImportResult) -> ImportSummary:
    return ImportSummary(
        layout=result.layout,
        phases=len(result.document.phases),
        columns=result.column_count,
        blocks=len(result.document.blocks),
    )


def _convert(text: str, layout: CsvLayout) -> CsvImportResult:
    if not text.strip():
        raise ImportFormatError("CSV content is empty.")
    return import_csv(text, layout)


@router.post("/imports/csv", response_model=BoardImportRead)
@limiter.limit(IMPORT_LIMIT)
async def import_csv_board(
    request: Request,
    payload: CsvBoardImport,
    repo: TenantRepository = TENANT_DEP,
    user: User = USER_DEP,
) -> BoardImportRead:
    """Create a board in the active organization from CSV text."""
    if payload.project_id is not None:
        await repo.get_or_404(Project, payload.project_id)
    result = _convert(payload.csv, payload.layout)
    now = utcnow()
    board = Board(
        organization_id=repo.organization_id,
        project_id=payload.project_id,
        created_by_user_id=user.id,
        name=payload.name,
        description=payload.description,
        phases=board_content.dump_phases(result.document),
        blocks=board_content.dump_blocks(result.document),
        created_at=now,
        updated_at=now,
    )
    board = await crud.save(repo.session, board)
    logger.info("import.csv.board_created board_id=%s layout=%s", board.id, result.layout)
    return BoardImportRead(board=to_board_read(board), summary=_summary(result))


@router.post("/boards/{board_id}/import-csv", response_model=BoardImportRead)
@limiter.limit(IMPORT_LIMIT)
async def import_csv_content(
    request: Request,
    payload: CsvContentImport,
    board: Board = BOARD_WRITE_DEP,
    repo: TenantRepository = TENANT_DEP,
    user: User = USER_DEP,
    hub: BoardHub = HUB_DEP,
) -> BoardImportRead:
    """Replace a board's content with CSV-derived content."""
    result = _convert(payload.csv, payload.layout)
    locked = await lock_board(repo.session, board.id)
    check_expected_version(locked, payload.expected_version)
    store_document(locked, result.document)
    await prune_stale_flags(repo.session, locked)
    locked = await crud.save(repo.session, locked)
    logger.info(
        "import.csv.content_replaced board_id=%s layout=%s version=%s",
        locked.id,
        result.layout,
        locked.content_version,
    )
    await publish_board_updated(hub, locked, actor_id=user.id)
    return BoardImportRead(board=to_board_read(locked), summary=_summary(result))


@router.post("/boards/{board_id}/import-pdf-workflow", response_model=BoardRead)
@limiter.limit(IMPORT_LIMIT)
async def import_pdf_workflow(
    request: Request,
    file: UploadFile = File(...),
    phase_id: str | None = Form(default=None),
    board: Board = BOARD_WRITE_DEP,
    repo: TenantRepository = TENANT_DEP,
    user: User = USER_DEP,
    hub: BoardHub = HUB_DEP,
) -> BoardRead:
    """Append one process step per PDF page to the board."""
    data = await file.read()
    if not data:
        raise ImportFormatError("No file uploaded.")
    steps = parse_workflow_pdf(data)
    updated = await mutate_content(
        repo.session,
        board,
        lambda document: append_workflow(document, steps, phase_id=phase_id or None),
    )
    logger.info(
        "import.pdf.appended board_id=%s filename=%s steps=%s",
        updated.id,
        file.filename,
        len(steps),
    )
    await publish_board_updated(hub, updated, actor_id=user.id)
    return to_board_read(updated)
