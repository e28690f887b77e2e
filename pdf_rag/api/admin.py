# =============================================================================
# Admin API — Dead-Letter Inspection
# =============================================================================
#
#   GET /admin/dead-letters?limit=N  — most recent permanently failed jobs
#
# Entries are written by the worker (workers/dead_letter.py) when a job
# fails fatally or runs out of retries. Read-only; operators re-upload
# the document once the cause is fixed.
# =============================================================================

from __future__ import annotations

import logging
from dataclasses import asdict

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from pdf_rag.api.deps import get_dead_letter_store
from pdf_rag.models.responses import DeadLetterListResponse, DeadLetterResponse, ErrorResponse
from pdf_rag.workers.dead_letter import DeadLetterStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Admin"])


@router.get(
    "/admin/dead-letters",
    response_model=DeadLetterListResponse,
    responses={500: {"model": ErrorResponse}},
    summary="List permanently failed ingestion jobs",
)
async def list_dead_letters(
    limit: int = Query(default=50, ge=1, le=500),
    store: DeadLetterStore = Depends(get_dead_letter_store),
):
    """Newest first."""
    try:
        entries = store.list_entries(limit)
        total = store.count()
    except Exception as exc:
        logger.exception("Dead-letter lookup failed: %s", exc)
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(error="Dead-letter lookup failed").model_dump(),
        )

    return DeadLetterListResponse(
        entries=[DeadLetterResponse(**asdict(entry)) for entry in entries],
        total=total,
    )
