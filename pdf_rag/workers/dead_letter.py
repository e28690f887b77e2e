# =============================================================================
# Dead-Letter Store — Redis List of Failed Jobs
# =============================================================================
#
# Jobs that fail fatally (LoadError, ChunkError, DecodeError, dimension
# mismatch) or exhaust their retries end up here for an operator to
# inspect. Each entry is one JSON document:
#
#   {"job_id": "...", "step": "loading", "error_type": "LoadError",
#    "message": "...", "cause": "OSError(...)", "payload": {...}, "attempts": 1,
#    "failed_at": "2026-10-19T08:00:00+00:00"}
#
# LPUSH + LTRIM keeps the newest `max_entries`; GET /admin/dead-letters
# reads them back. Uses Redis db 2 (db 0/1 belong to Celery).
# =============================================================================

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import Any

import redis

from pdf_rag.config import Settings
from pdf_rag.errors import PdfRagError

logger = logging.getLogger(__name__)


@dataclass
class DeadLetterEntry:
    """One failed job, as recorded for operators."""

    job_id: str | None
    step: str
    error_type: str
    message: str
    cause: str | None = None
    payload: Any = None
    attempts: int = 1
    failed_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def from_error(
        cls,
        exc: BaseException,
        job_id: str | None,
        payload: Any = None,
        attempts: int = 1,
    ) -> DeadLetterEntry:
        if isinstance(exc, PdfRagError):
            details = exc.to_dict()
        else:
            details = {"error_type": type(exc).__name__, "message": str(exc), "cause": None}
        return cls(
            job_id=job_id,
            step=details.get("step", "decoding"),
            error_type=details["error_type"],
            message=details["message"],
            cause=details["cause"],
            payload=payload,
            attempts=attempts,
        )

    def to_json(self) -> str:
        data = asdict(self)
        data["failed_at"] = self.failed_at.isoformat()
        return json.dumps(data, default=str)

    @classmethod
    def from_json(cls, raw: str | bytes) -> DeadLetterEntry:
        data = json.loads(raw)
        data["failed_at"] = datetime.fromisoformat(data["failed_at"])
        return cls(**data)


class DeadLetterStore:
    """Append/read access to the dead-letter list."""

    def __init__(
        self,
        client: redis.Redis,
        key: str = "pdf_rag:dead_letter",
        max_entries: int = 1000,
    ) -> None:
        self._client = client
        self.key = key
        self.max_entries = max_entries

    @classmethod
    def from_settings(cls, settings: Settings) -> DeadLetterStore:
        client = redis.Redis.from_url(settings.dead_letter_redis_url, decode_responses=True)
        return cls(client, key=settings.dead_letter_key, max_entries=settings.dead_letter_max_entries)

    def record(self, entry: DeadLetterEntry) -> None:
        """
        Append an entry and log the operator-visible failure event.

        A Redis outage must not hide the failure: the ERROR log line is
        written first and a failed write is logged, not raised.
        """
        logger.error(
            "Dead-lettered job %s: %s at step '%s' after %d attempt(s): %s",
            entry.job_id, entry.error_type, entry.step, entry.attempts, entry.message,
        )
        try:
            pipe = self._client.pipeline()
            pipe.lpush(self.key, entry.to_json())
            pipe.ltrim(self.key, 0, self.max_entries - 1)
            pipe.execute()
        except redis.RedisError as exc:
            logger.error("Could not write dead-letter entry for job %s: %s", entry.job_id, exc)

    def list_entries(self, limit: int = 50) -> list[DeadLetterEntry]:
        """Newest first."""
        raw_entries = self._client.lrange(self.key, 0, max(limit, 1) - 1)
        return [DeadLetterEntry.from_json(raw) for raw in raw_entries]

    def count(self) -> int:
        return int(self._client.llen(self.key))

    def close(self) -> None:
        self._client.close()
