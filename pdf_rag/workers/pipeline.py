# =============================================================================
# Ingestion Worker — Document Processing State Machine
# =============================================================================
#
#   Received → Loading → Chunking → Embedding → [Bootstrapping] → Upserting
#            → Completed
#   any step ──────────────────────────────────────────────────────→ Failed
#
# One job runs its steps strictly in order, in one thread. Parallelism is
# across jobs only (Celery pool, see celery_app.py).
#
#   1. Load      — PDF → pages                     LoadError (fatal)
#   2. Chunk     — pages → DocumentChunks          ChunkError (fatal)
#   3. Embed     — chunks → EmbeddedChunks         EmbeddingError (retryable)
#   4. Bootstrap — ensure collection (if missing)  StoreBootstrapError
#   5. Upsert    — single logical batch            UpsertError (retryable)
#   6. Ack       — return the report; the task's late ack happens after
#
# Nothing touches the vector store before every chunk has been embedded,
# so a job that fails in steps 1–3 leaves no trace in the collection. The
# upsert is the only commit point.
#
# This module knows nothing about Celery: tasks.py owns decoding, retries
# and dead-lettering.
# =============================================================================

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from pdf_rag.errors import ChunkError, IngestionError, StoreBootstrapError, UpsertError
from pdf_rag.models.jobs import IngestionJob
from pdf_rag.services.chunker import chunk_pages, validate_chunk_config
from pdf_rag.services.embedder import EmbeddingClient
from pdf_rag.services.loader import LoadedDocument, load_pdf
from pdf_rag.services.vectorstore import VectorStore

logger = logging.getLogger(__name__)


class IngestionState(str, Enum):
    RECEIVED = "received"
    LOADING = "loading"
    CHUNKING = "chunking"
    EMBEDDING = "embedding"
    BOOTSTRAPPING = "bootstrapping"
    UPSERTING = "upserting"
    COMPLETED = "completed"
    FAILED = "failed"


# Legal transitions; FAILED is reachable from every non-terminal state.
_TRANSITIONS: dict[IngestionState, set[IngestionState]] = {
    IngestionState.RECEIVED: {IngestionState.LOADING},
    IngestionState.LOADING: {IngestionState.CHUNKING},
    IngestionState.CHUNKING: {IngestionState.EMBEDDING},
    IngestionState.EMBEDDING: {IngestionState.BOOTSTRAPPING, IngestionState.UPSERTING},
    IngestionState.BOOTSTRAPPING: {IngestionState.UPSERTING},
    IngestionState.UPSERTING: {IngestionState.COMPLETED},
    IngestionState.COMPLETED: set(),
    IngestionState.FAILED: set(),
}


@dataclass
class IngestionReport:
    """Summary of one successfully ingested job (the Celery task result)."""

    job_id: str
    filename: str
    page_count: int
    chunk_count: int
    dimension: int
    collection: str
    collection_created: bool
    states: list[str] = field(default_factory=list)
    duration_ms: int = 0

    def to_dict(self) -> dict:
        return {
            "job_id": self.job_id,
            "filename": self.filename,
            "status": IngestionState.COMPLETED.value,
            "page_count": self.page_count,
            "chunk_count": self.chunk_count,
            "dimension": self.dimension,
            "collection": self.collection,
            "collection_created": self.collection_created,
            "states": self.states,
            "duration_ms": self.duration_ms,
        }


class _JobRun:
    """Tracks the current state of one job and logs each transition."""

    def __init__(self, job_id: str) -> None:
        self.job_id = job_id
        self.state = IngestionState.RECEIVED
        self.history: list[IngestionState] = [IngestionState.RECEIVED]

    def advance(self, new_state: IngestionState) -> None:
        if new_state is not IngestionState.FAILED and new_state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal transition {self.state.value} → {new_state.value}")
        logger.debug("[%s] %s → %s", self.job_id, self.state.value, new_state.value)
        self.state = new_state
        self.history.append(new_state)


class IngestionWorker:
    """
    Processes one IngestionJob end to end.

    All collaborators are injected; construct once per worker process and
    share across job threads (the worker holds no per-job state).
    """

    def __init__(
        self,
        embedder: EmbeddingClient,
        vector_store: VectorStore,
        chunk_size: int = 512,
        chunk_overlap: int = 50,
        loader: Callable[[str], LoadedDocument] = load_pdf,
    ) -> None:
        validate_chunk_config(chunk_size, chunk_overlap)
        self._embedder = embedder
        self._vector_store = vector_store
        self._loader = loader
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap

    def process(
        self,
        job: IngestionJob,
        job_id: str,
        chunk_size: int | None = None,
        chunk_overlap: int | None = None,
    ) -> IngestionReport:
        """
        Run the pipeline for `job`.

        Returns:
            IngestionReport once every chunk is in the collection.

        Raises:
            IngestionError: With `step` set to the state that failed and
                `job_id` set. Unexpected exceptions are wrapped as a
                retryable IngestionError.
        """
        run = _JobRun(job_id)
        started = time.monotonic()
        size = self.chunk_size if chunk_size is None else chunk_size
        overlap = self.chunk_overlap if chunk_overlap is None else chunk_overlap

        logger.info(
            "[%s] Starting ingestion: file=%s, path=%s, chunk_size=%d, chunk_overlap=%d",
            job_id, job.filename, job.source_path, size, overlap,
        )

        try:
            # --- Step 1: Load ---
            run.advance(IngestionState.LOADING)
            logger.info("[%s] Step 1/5: Loading PDF...", job_id)
            document = self._loader(job.source_path)

            # --- Step 2: Chunk ---
            run.advance(IngestionState.CHUNKING)
            logger.info("[%s] Step 2/5: Chunking %d pages...", job_id, len(document.pages))
            chunks = chunk_pages(
                document.pages,
                filename=job.filename,
                source_path=job.source_path,
                chunk_size=size,
                chunk_overlap=overlap,
            )
            if not chunks:
                raise ChunkError(
                    f"No chunks produced from '{job.filename}'; "
                    "PDF may be empty or have no text layer"
                )

            # --- Step 3: Embed (all-or-nothing) ---
            run.advance(IngestionState.EMBEDDING)
            logger.info(
                "[%s] Step 3/5: Embedding %d chunks (model=%s)...",
                job_id, len(chunks), self._embedder.model,
            )
            embedded = self._embedder.embed_chunks(chunks)
            dimension = embedded[0].dimension

            # --- Step 4: Ensure collection ---
            collection_created = self._ensure_collection(run, dimension)

            # --- Step 5: Upsert ---
            run.advance(IngestionState.UPSERTING)
            logger.info(
                "[%s] Step 5/5: Upserting %d chunks into '%s'...",
                job_id, len(embedded), self._vector_store.collection_name,
            )
            ids = self._vector_store.upsert(embedded)
            if len(ids) != len(embedded):
                raise UpsertError(
                    f"Store acknowledged {len(ids)} of {len(embedded)} chunks"
                )

            run.advance(IngestionState.COMPLETED)

        except IngestionError as exc:
            failed_step = run.state
            run.advance(IngestionState.FAILED)
            exc.step = failed_step.value
            exc.job_id = job_id
            logger.error(
                "[%s] Ingestion failed at %s (%s): %s",
                job_id, failed_step.value, type(exc).__name__, exc.message,
            )
            raise
        except Exception as exc:
            failed_step = run.state
            run.advance(IngestionState.FAILED)
            logger.exception(
                "[%s] Unexpected error at %s: %s", job_id, failed_step.value, exc,
            )
            raise IngestionError(
                f"Unexpected error during {failed_step.value}: {exc}",
                exc,
                step=failed_step.value,
                job_id=job_id,
            ) from exc

        report = IngestionReport(
            job_id=job_id,
            filename=job.filename,
            page_count=document.page_count,
            chunk_count=len(embedded),
            dimension=dimension,
            collection=self._vector_store.collection_name,
            collection_created=collection_created,
            states=[s.value for s in run.history],
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        logger.info("[%s] Ingestion complete: %s", job_id, report.to_dict())
        return report

    def _ensure_collection(self, run: _JobRun, dimension: int) -> bool:
        """
        Step 4. Enters Bootstrapping only when the collection is missing
        (or has to be rejected); returns True if this job created it.
        """
        store = self._vector_store
        try:
            if store.collection_exists():
                stored = store.collection_dimension()
                if stored is None or stored == dimension:
                    return False
                run.advance(IngestionState.BOOTSTRAPPING)
                raise StoreBootstrapError(
                    f"Collection '{store.collection_name}' has dimension {stored}, "
                    f"embeddings have dimension {dimension}",
                    retryable=False,
                )

            run.advance(IngestionState.BOOTSTRAPPING)
            logger.info(
                "[%s] Step 4/5: Collection '%s' missing, creating (dimension=%d)...",
                run.job_id, store.collection_name, dimension,
            )
            return store.ensure_collection(dimension)
        except IngestionError:
            raise
        except Exception as exc:
            if run.state is IngestionState.EMBEDDING:
                run.advance(IngestionState.BOOTSTRAPPING)
            raise StoreBootstrapError(
                f"Could not check collection '{store.collection_name}': {exc}", exc,
            ) from exc
