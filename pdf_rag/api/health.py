# =============================================================================
# Health API
# =============================================================================

from fastapi import APIRouter

from pdf_rag.models.responses import HealthResponse

router = APIRouter(tags=["Health"])


@router.get("/", response_model=HealthResponse, summary="Liveness check")
async def health() -> HealthResponse:
    return HealthResponse(status="OK")
