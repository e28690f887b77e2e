# =============================================================================
# Error Taxonomy
# =============================================================================
#
#   PdfRagError
#   ├── ConfigurationError        — missing credentials (fatal at startup)
#   ├── DecodeError               — malformed queue payload (never retried)
#   ├── IngestionError            — job failure, carries the failing step
#   │   ├── LoadError             — missing / unreadable / non-PDF file (fatal)
#   │   ├── ChunkError            — nothing chunkable, bad chunk config (fatal)
#   │   ├── EmbeddingError        — provider failure or timeout (retryable)
#   │   ├── StoreBootstrapError   — ensure-collection failure (retryable)
#   │   └── UpsertError           — write failure (retryable)
#   └── QueryError                — request failure, reported to the caller
#       ├── RetrievalError        — embedding the query / similarity search
#       └── GenerationError       — completion provider
#
# Ingestion errors are recovered at the job boundary (workers/tasks.py),
# query errors at the request boundary (api/chat.py).
# =============================================================================

from __future__ import annotations


class PdfRagError(Exception):
    """Base class for every error raised by this package."""

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause

    def to_dict(self) -> dict:
        return {
            "error_type": type(self).__name__,
            "message": self.message,
            "cause": repr(self.cause) if self.cause else None,
        }


class ConfigurationError(PdfRagError):
    """Required configuration is missing or invalid."""


class DecodeError(PdfRagError):
    """A queue payload could not be decoded into an IngestionJob."""


# ---------------------------------------------------------------------------
# Ingestion
# ---------------------------------------------------------------------------


class IngestionError(PdfRagError):
    """
    A job failed inside the ingestion pipeline.

    Attributes:
        step: Pipeline state the job was in when it failed (e.g. "loading").
            Filled in by the worker if the raiser does not know it.
        job_id: Queue-assigned job id, filled in by the worker.
        retryable: Whether redelivery can reasonably succeed.
    """

    default_step = "unknown"
    retryable = True

    def __init__(
        self,
        message: str,
        cause: BaseException | None = None,
        *,
        step: str | None = None,
        job_id: str | None = None,
        retryable: bool | None = None,
    ) -> None:
        super().__init__(message, cause)
        self.step = step or self.default_step
        self.job_id = job_id
        if retryable is not None:
            self.retryable = retryable

    def to_dict(self) -> dict:
        return {
            **super().to_dict(),
            "step": self.step,
            "job_id": self.job_id,
            "retryable": self.retryable,
        }


class LoadError(IngestionError):
    default_step = "loading"
    retryable = False


class ChunkError(IngestionError):
    default_step = "chunking"
    retryable = False


class EmbeddingError(IngestionError):
    default_step = "embedding"


class StoreBootstrapError(IngestionError):
    default_step = "bootstrapping"


class UpsertError(IngestionError):
    default_step = "upserting"


# ---------------------------------------------------------------------------
# Query
# ---------------------------------------------------------------------------


class QueryError(PdfRagError):
    """A query could not be answered."""


class RetrievalError(QueryError):
    """Embedding the query or searching the collection failed."""


class GenerationError(QueryError):
    """The completion provider failed or returned nothing."""
