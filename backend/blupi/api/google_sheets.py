"""Google Sheets lookups and board sheet documents.

Endpoint annotations in this module are evaluated at import time (no
postponed annotations) because rate-limited routes are wrapped by slowapi.
"""

from uuid import UUID

from fastapi import APIRouter, HTTPException, Request, status
from sqlmodel import col
from sqlmodel.ext.asyncio.session import AsyncSession

from blupi.api.deps import BOARD_READ_DEP, BOARD_WRITE_DEP, SESSION_DEP, USER_DEP
from blupi.core.feature_flags import require_feature
from blupi.core.logging import get_logger
from blupi.core.rate_limit import SHEETS_LIMIT, limiter
from blupi.db import crud
from blupi.integrations import google_sheets
from blupi.models.boards import Board
from blupi.models.sheet_documents import SheetDocument
from blupi.models.users import User
from blupi.schemas.common import OkResponse
from blupi.schemas.google_sheets import (
    SheetDataRequest,
    SheetDataResponse,
    SheetDocumentCreate,
    SheetDocumentRead,
    SheetValidateRequest,
    SheetValidateResponse,
)

router = APIRouter(tags=["google-sheets"])
logger = get_logger(__name__)
INVALID_SHEET_DETAIL = "Not a Google Sheets URL or spreadsheet id"


def _require_sheets() -> None:
    require_feature(google_sheets.FEATURE)


@router.post("/google-sheets/validate", response_model=SheetValidateResponse)
@limiter.limit(SHEETS_LIMIT)
async def validate_sheet(
    request: Request,
    payload: SheetValidateRequest,
    _user: User = USER_DEP,
) -> SheetValidateResponse:
    """Check that a URL names a spreadsheet the configured key can read."""
    _require_sheets()
    sheet_id = google_sheets.parse_sheet_id(payload.url)
    if sheet_id is None:
        return SheetValidateResponse(valid=False)
    title = await google_sheets.fetch_sheet_title(sheet_id)
    return SheetValidateResponse(valid=True, sheet_id=sheet_id, title=title)


@router.post("/google-sheets/data", response_model=SheetDataResponse)
@limiter.limit(SHEETS_LIMIT)
async def sheet_data(
    request: Request,
    payload: SheetDataRequest,
    _user: User = USER_DEP,
) -> SheetDataResponse:
    """Fetch cell values for a range, with a CSV rendering for imports."""
    _require_sheets()
    sheet_id = google_sheets.parse_sheet_id(payload.sheet_id)
    if sheet_id is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=INVALID_SHEET_DETAIL)
    values = await google_sheets.fetch_sheet_values(sheet_id, payload.range)
    return SheetDataResponse(
        sheet_id=sheet_id,
        range=payload.range,
        values=values,
        csv=google_sheets.values_to_csv(values),
    )


@router.get("/boards/{board_id}/sheet-documents", response_model=list[SheetDocumentRead])
async def list_sheet_documents(
    board: Board = BOARD_READ_DEP,
    session: AsyncSession = SESSION_DEP,
) -> list[SheetDocumentRead]:
    documents = (
        await SheetDocument.objects.filter_by(board_id=board.id)
        .order_by(col(SheetDocument.created_at).asc())
        .all(session)
    )
    return [SheetDocumentRead.model_validate(doc, from_attributes=True) for doc in documents]


@router.post("/boards/{board_id}/sheet-documents", response_model=SheetDocumentRead)
@limiter.limit(SHEETS_LIMIT)
async def create_sheet_document(
    request: Request,
    payload: SheetDocumentCreate,
    board: Board = BOARD_WRITE_DEP,
    session: AsyncSession = SESSION_DEP,
    user: User = USER_DEP,
) -> SheetDocumentRead:
    """Link a spreadsheet to a board; the sheet title names it unless given."""
    _require_sheets()
    sheet_id = google_sheets.parse_sheet_id(payload.url)
    if sheet_id is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=INVALID_SHEET_DETAIL)
    if await SheetDocument.objects.filter_by(board_id=board.id, sheet_id=sheet_id).exists(
        session,
    ):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Sheet is already linked to this board",
        )
    name = payload.name or await google_sheets.fetch_sheet_title(sheet_id) or sheet_id
    document = await crud.save(
        session,
        SheetDocument(
            board_id=board.id,
            sheet_id=sheet_id,
            name=name,
            url=payload.url,
            created_by_user_id=user.id,
        ),
    )
    logger.info("board.sheet_document.created board_id=%s sheet_id=%s", board.id, sheet_id)
    return SheetDocumentRead.model_validate(document, from_attributes=True)


@router.delete(
    "/boards/{board_id}/sheet-documents/{document_id}",
    response_model=OkResponse,
)
async def delete_sheet_document(
    document_id: UUID,
    board: Board = BOARD_WRITE_DEP,
    session: AsyncSession = SESSION_DEP,
) -> OkResponse:
    document = await SheetDocument.objects.by_id(document_id).first(session)
    if document is None or document.board_id != board.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)
    await crud.delete(session, document)
    return OkResponse()
