"""
Equipment list import API routes.

Two calls per reconciliation session: preview (upload + verify + match)
and execute (commit with the user's decisions). Nothing is stored
between them; the client sends the preview session back on execute.
"""

from fastapi import APIRouter, File, Form, UploadFile
from fastapi.responses import JSONResponse
from io import BytesIO
import structlog

from models.equipment_import import (
    ExecutionReport,
    ImportContext,
    ImportExecuteRequest,
    ImportPreviewResponse,
)
from parsers.equipment_list_parser import parse_equipment_list
from services.path_classifier import opt_in_candidates
from services.reconciliation_service import get_reconciliation_service
from exceptions import AppError

logger = structlog.get_logger(__name__)

router = APIRouter()


# ===================
# EXCEPTION HANDLER
# ===================

def handle_error(e: Exception) -> JSONResponse:
    """Convert exception to JSON response."""
    if isinstance(e, AppError):
        return JSONResponse(
            status_code=e.status_code,
            content=e.to_dict()
        )
    # Unexpected error
    logger.error("unexpected_error", error=str(e), type=type(e).__name__)
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred"
            }
        }
    )


# ===================
# ROUTES
# ===================

@router.post("/{list_id}/import/preview", response_model=ImportPreviewResponse)
async def preview_import(
    list_id: str,
    project_id: str = Form(..., description="Project whose quotation is reconciled"),
    file: UploadFile = File(...)
):
    """
    Parse an equipment spreadsheet and propose import decisions.

    Raises:
        422: Malformed spreadsheet or failed row verification
    """
    logger.info(
        "equipment_import_preview_started",
        list_id=list_id,
        project_id=project_id,
        filename=file.filename
    )

    try:
        content = await file.read()
        rows = parse_equipment_list(BytesIO(content))

        service = get_reconciliation_service()
        session, verification = service.start_session(rows, project_id)

        return ImportPreviewResponse(
            session=session,
            total=verification.total,
            new_count=verification.new_count,
            catalog_only_count=verification.catalog_only_count,
            quoted_count=verification.quoted_count,
            classification=service.preview(session),
            eligible_catalog_opt_ins=opt_in_candidates(session),
            category_mismatches=[row.code for row in session.rows if row.category_mismatch],
        )

    except Exception as e:
        return handle_error(e)


@router.post("/{list_id}/import/execute", response_model=ExecutionReport)
async def execute_import(list_id: str, data: ImportExecuteRequest):
    """
    Commit a previewed session.

    Raises:
        422: Invalid decision or missing group selection (nothing written)
        502: A stage failed; earlier stages stay committed
    """
    logger.info("equipment_import_execute_started", list_id=list_id, rows=len(data.session.rows))

    try:
        service = get_reconciliation_service()
        session = service.apply_decisions(
            data.session,
            mappings=data.mappings,
            replacements=data.replacements,
            catalog_opt_ins=data.catalog_opt_ins,
        )
        context = ImportContext(
            list_id=list_id,
            group_id=data.group_id,
            actor_id=data.actor_id,
        )
        return service.execute(session, context)

    except Exception as e:
        return handle_error(e)
