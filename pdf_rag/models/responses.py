# =============================================================================
# API Response Models — Pydantic V2 Schemas
# =============================================================================
#
# The JSON shapes clients depend on:
#   GET  /                    → {"status": "OK"}
#   POST /upload/pdf          → {"message": "File uploaded", "job_id": "..."}
#   GET  /chat?message=...    → {"resultData": {"message": "...", "docs": [...]}}
#   any failure               → {"error": "..."}
#
# "resultData", "pageContent" etc. are camelCase on the wire because
# existing frontends read them; Python attributes stay snake_case.
# =============================================================================

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class HealthResponse(BaseModel):
    """Response for GET /, confirms the API is running."""

    status: str = "OK"


class ErrorResponse(BaseModel):
    error: str


class UploadResponse(BaseModel):
    """
    Response for POST /upload/pdf.

    The document is NOT queryable yet; ingestion runs in the worker.
    """

    message: str = "File uploaded"
    job_id: str = Field(description="Queue job id, usable with /upload/status/{job_id}")


class SourceDocument(BaseModel):
    """One retrieved chunk, as sent back with an answer for traceability."""

    page_content: str = Field(alias="pageContent")
    metadata: dict[str, Any] = Field(default_factory=dict)
    score: float = Field(description="Cosine similarity (higher = more relevant)")

    model_config = ConfigDict(populate_by_name=True)


class ChatResult(BaseModel):
    message: str = Field(description="The generated answer")
    docs: list[SourceDocument] = Field(default_factory=list)


class ChatResponse(BaseModel):
    """Response for GET /chat."""

    result_data: ChatResult = Field(alias="resultData")

    model_config = ConfigDict(populate_by_name=True)


class JobStatusResponse(BaseModel):
    """
    Response for GET /upload/status/{job_id}.

    Celery task states:
    - PENDING: not picked up yet (or unknown id)
    - STARTED: a worker is processing it
    - RETRY: failed transiently, scheduled for redelivery
    - SUCCESS: chunks are in the collection
    - FAILURE: dead-lettered
    """

    job_id: str
    status: str
    report: dict[str, Any] | None = None
    error: str | None = None


class DeadLetterResponse(BaseModel):
    job_id: str | None
    step: str
    error_type: str
    message: str
    cause: str | None = None
    payload: Any = None
    attempts: int
    failed_at: datetime


class DeadLetterListResponse(BaseModel):
    entries: list[DeadLetterResponse]
    total: int
