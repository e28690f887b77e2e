# =============================================================================
# Upload API — PDF Upload and Ingestion Status
# =============================================================================
#
# ENDPOINTS:
#   POST /upload/pdf              — save PDF, enqueue ingestion job
#   GET  /upload/status/{job_id}  — poll job state (PENDING → SUCCESS/FAILURE)
#
# The upload returns as soon as the job is on the queue; the document is
# queryable only after the worker has upserted its chunks.
# =============================================================================

import logging

from fastapi import APIRouter, Depends, File, UploadFile
from fastapi.responses import JSONResponse

from pdf_rag.api.deps import get_document_store, get_job_producer
from pdf_rag.models.jobs import IngestionJob
from pdf_rag.models.responses import ErrorResponse, JobStatusResponse, UploadResponse
from pdf_rag.services.storage import DocumentStore
from pdf_rag.workers.queue import JobProducer

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Ingestion"])


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=message).model_dump())


# ---------------------------------------------------------------------------
# POST /upload/pdf — Upload a PDF
# ---------------------------------------------------------------------------


@router.post(
    "/upload/pdf",
    response_model=UploadResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    summary="Upload a PDF for ingestion",
)
async def upload_pdf(
    pdf: UploadFile | None = File(default=None, description="PDF file (multipart field 'pdf')"),
    store: DocumentStore = Depends(get_document_store),
    producer: JobProducer = Depends(get_job_producer),
):
    """Save the upload to disk and enqueue an ingestion job for it."""
    if pdf is None or not pdf.filename:
        return _error(400, "No file uploaded. Send the PDF in multipart field 'pdf'.")

    if not pdf.filename.lower().endswith(".pdf"):
        return _error(400, "Only PDF files are accepted. Please upload a .pdf file.")

    content = await pdf.read()
    if not content:
        return _error(400, "Uploaded file is empty.")

    logger.info("Upload received: %s (%d bytes)", pdf.filename, len(content))

    try:
        stored = store.save(pdf.filename, content)
        job = IngestionJob(
            filename=stored.filename,
            source_path=stored.path,
            destination=stored.destination,
        )
        job_id = producer.enqueue(job)
    except Exception as exc:
        logger.exception("Upload failed for '%s': %s", pdf.filename, exc)
        return _error(500, "Upload failed")

    return UploadResponse(message="File uploaded", job_id=job_id)


# ---------------------------------------------------------------------------
# GET /upload/status/{job_id} — Poll ingestion status
# ---------------------------------------------------------------------------


@router.get(
    "/upload/status/{job_id}",
    response_model=JobStatusResponse,
    responses={500: {"model": ErrorResponse}},
    summary="Check ingestion job status",
)
async def get_upload_status(
    job_id: str,
    producer: JobProducer = Depends(get_job_producer),
):
    """
    Celery task state for `job_id`, with the ingestion report on SUCCESS
    and the error on FAILURE. Unknown ids report PENDING.
    """
    try:
        result = producer.status(job_id)
        status = result.status
        report = None
        error = None
        if status == "SUCCESS":
            report = result.result if isinstance(result.result, dict) else None
        elif status in ("FAILURE", "RETRY"):
            error = str(result.result) if result.result else "Unknown error"
    except Exception as exc:
        logger.exception("Status lookup failed for job %s: %s", job_id, exc)
        return _error(500, "Status lookup failed")

    return JobStatusResponse(job_id=job_id, status=status, report=report, error=error)
