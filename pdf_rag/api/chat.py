# =============================================================================
# Chat API — Retrieval-Augmented Question Answering
# =============================================================================
#
#   GET /chat?message=<query>
#     → {"resultData": {"message": <answer>, "docs": [<retrieved chunks>]}}
#     → 500 {"error": "Chat failed"} on RetrievalError / GenerationError
#
# Validation and error mapping only; the work happens in
# services/retrieval.py.
# =============================================================================

import logging

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from pdf_rag.api.deps import get_retrieval_service
from pdf_rag.errors import QueryError
from pdf_rag.models.responses import ChatResponse, ChatResult, ErrorResponse, SourceDocument
from pdf_rag.services.retrieval import RetrievalService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Question Answering"])


@router.get(
    "/chat",
    response_model=ChatResponse,
    response_model_by_alias=True,
    responses={500: {"model": ErrorResponse}},
    summary="Ask a question about the uploaded PDFs",
)
async def chat(
    message: str = Query(
        ...,
        min_length=1,
        max_length=2000,
        pattern=r"\S",
        description="The user's question",
        examples=["What is this document about?"],
    ),
    service: RetrievalService = Depends(get_retrieval_service),
):
    """Answer `message` from the indexed documents."""
    logger.info("Chat request: message='%s'", message[:80])

    try:
        result = await service.answer(message)
    except QueryError as exc:
        logger.error("Chat failed (%s): %s", type(exc).__name__, exc.message, exc_info=exc.cause)
        return JSONResponse(status_code=500, content=ErrorResponse(error="Chat failed").model_dump())
    except Exception as exc:
        logger.exception("Chat failed unexpectedly: %s", exc)
        return JSONResponse(status_code=500, content=ErrorResponse(error="Chat failed").model_dump())

    docs = [
        SourceDocument(
            page_content=chunk.content,
            metadata=chunk.metadata,
            score=chunk.similarity_score,
        )
        for chunk in result.retrieved_chunks
    ]
    return ChatResponse(result_data=ChatResult(message=result.answer, docs=docs))
