# =============================================================================
# Celery Task Definitions — the Job Boundary
# =============================================================================
#
# `process_pdf` (task name "file-ready") is where ingestion failures are
# recovered. The pipeline itself lives in pipeline.py; this module adds:
#
#   1. DECODE   — payload (object / JSON string / bytes) → IngestionJob;
#                 DecodeError → dead-letter, no retry
#   2. PROCESS  — IngestionWorker.process()
#   3. RECOVER  — retryable error with attempts left → self.retry() with
#                 exponential backoff (30s, 60s, 120s by default)
#                 fatal error or retries exhausted → dead-letter + FAILURE
#   4. ACK      — returning normally lets Celery ack the message (acks_late)
#
# A failing job never takes the worker down: every error ends as a task
# state (RETRY / FAILURE), never as an uncaught exception in the pool.
#
# IMPORTANT: Celery workers are SYNCHRONOUS. Do not use async/await here.
# =============================================================================

import logging
import threading

from celery.signals import setup_logging, worker_init, worker_shutdown

from pdf_rag.config import settings
from pdf_rag.errors import ConfigurationError, DecodeError, IngestionError
from pdf_rag.logging_config import configure_logging
from pdf_rag.models.jobs import decode_job
from pdf_rag.services.embedder import EmbeddingClient
from pdf_rag.services.vectorstore import ChromaVectorStore
from pdf_rag.workers.celery_app import celery_app
from pdf_rag.workers.dead_letter import DeadLetterEntry, DeadLetterStore
from pdf_rag.workers.pipeline import IngestionWorker

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Worker Resources
# ---------------------------------------------------------------------------
# Built once per worker process (on worker_init, or lazily on first job)
# and shared by every pool thread; closed on worker_shutdown.
# ---------------------------------------------------------------------------

_resources_lock = threading.Lock()
_ingestion_worker: IngestionWorker | None = None
_embedder: EmbeddingClient | None = None
_vector_store: ChromaVectorStore | None = None
_dead_letters: DeadLetterStore | None = None


def get_ingestion_worker() -> IngestionWorker:
    global _ingestion_worker, _embedder, _vector_store
    with _resources_lock:
        if _ingestion_worker is None:
            _embedder = EmbeddingClient.from_settings(settings)
            _vector_store = ChromaVectorStore.from_settings(settings)
            _ingestion_worker = IngestionWorker(
                embedder=_embedder,
                vector_store=_vector_store,
                chunk_size=settings.chunk_size,
                chunk_overlap=settings.chunk_overlap,
            )
        return _ingestion_worker


def get_dead_letter_store() -> DeadLetterStore:
    global _dead_letters
    with _resources_lock:
        if _dead_letters is None:
            _dead_letters = DeadLetterStore.from_settings(settings)
        return _dead_letters


def close_resources() -> None:
    global _ingestion_worker, _embedder, _vector_store, _dead_letters
    with _resources_lock:
        for resource in (_embedder, _vector_store, _dead_letters):
            if resource is None:
                continue
            try:
                resource.close()
            except Exception as exc:
                logger.warning("Error closing %s: %s", type(resource).__name__, exc)
        _ingestion_worker = _embedder = _vector_store = _dead_letters = None


def retry_countdown(retries: int, base: int) -> int:
    """Seconds to wait before redelivery number `retries + 1`."""
    return base * (2 ** retries)


# ---------------------------------------------------------------------------
# Worker Lifecycle Signals
# ---------------------------------------------------------------------------


@setup_logging.connect
def _setup_worker_logging(**kwargs) -> None:
    configure_logging(settings.log_level)


@worker_init.connect
def _init_worker(**kwargs) -> None:
    # Missing credentials stop the worker before it consumes any job.
    try:
        settings.require_credentials()
    except ConfigurationError as exc:
        logger.critical("Worker cannot start: %s", exc.message)
        raise SystemExit(1) from exc
    get_ingestion_worker()
    get_dead_letter_store()
    logger.info(
        "Ingestion worker ready (queue=%s, pool=%s, concurrency=%d, collection=%s)",
        settings.queue_name, settings.worker_pool,
        settings.worker_concurrency, settings.collection_name,
    )


@worker_shutdown.connect
def _shutdown_worker(**kwargs) -> None:
    logger.info("Ingestion worker shutting down, closing clients")
    close_resources()


# ---------------------------------------------------------------------------
# Ingestion Task
# ---------------------------------------------------------------------------


@celery_app.task(
    bind=True,
    name=settings.queue_job_name,
    max_retries=settings.ingest_max_retries,
)
def process_pdf(self, payload) -> dict:
    """
    Ingest one uploaded PDF.

    Args:
        self: Celery task instance (bound task, provides self.request.id).
        payload: Job body as a dict, JSON string or JSON bytes.

    Returns:
        IngestionReport as a dict (stored as the task result).
    """
    job_id = self.request.id
    attempts = self.request.retries + 1

    try:
        job = decode_job(payload)
    except DecodeError as exc:
        get_dead_letter_store().record(
            DeadLetterEntry.from_error(exc, job_id, payload=payload, attempts=attempts)
        )
        raise

    logger.info(
        "[%s] Received job for '%s' (attempt %d/%d)",
        job_id, job.filename, attempts, self.max_retries + 1,
    )

    try:
        report = get_ingestion_worker().process(job, job_id)
    except IngestionError as exc:
        if exc.retryable and self.request.retries < self.max_retries:
            countdown = retry_countdown(self.request.retries, settings.ingest_retry_backoff)
            logger.warning(
                "[%s] %s at %s, retrying in %ds (attempt %d/%d)",
                job_id, type(exc).__name__, exc.step, countdown,
                attempts, self.max_retries + 1,
            )
            raise self.retry(exc=exc, countdown=countdown)

        get_dead_letter_store().record(
            DeadLetterEntry.from_error(
                exc, job_id, payload=job.to_payload(), attempts=attempts,
            )
        )
        raise

    return report.to_dict()
