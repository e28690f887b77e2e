# =============================================================================
# Ingestion Job — Queue Message Schema
# =============================================================================
#
# The contract between the upload handler (producer) and the ingestion
# worker (consumer). On the wire the job body is:
#
#   {"filename": "sample.pdf",
#    "destination": "/tmp/",
#    "path": "/tmp/1700000000000-123456789-sample.pdf",
#    "enqueuedAt": "2026-10-19T08:00:00Z"}
#
# Older producers send the same object JSON-encoded as a string, and may
# omit "destination" / "enqueuedAt". decode_job() is the ONLY place that
# deals with payload shape; everything downstream gets an IngestionJob.
# =============================================================================

from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from pdf_rag.errors import DecodeError


class IngestionJob(BaseModel):
    """A request to ingest one uploaded PDF. Immutable once created."""

    filename: str = Field(min_length=1, description="Original upload filename")
    source_path: str = Field(
        alias="path",
        min_length=1,
        description="Where the Document Store Adapter saved the file",
    )
    destination: str | None = Field(
        default=None,
        description="Directory the file was saved into",
    )
    enqueued_at: datetime = Field(
        alias="enqueuedAt",
        default_factory=lambda: datetime.now(UTC),
    )

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        extra="ignore",
        str_strip_whitespace=True,
    )

    @field_validator("enqueued_at")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value

    def to_payload(self) -> dict[str, Any]:
        """Wire representation (JSON-safe, wire field names)."""
        return self.model_dump(mode="json", by_alias=True)


def decode_job(payload: Any) -> IngestionJob:
    """
    Strictly decode a queue payload into an IngestionJob.

    Accepts a dict, a JSON string, or JSON bytes.

    Raises:
        DecodeError: If the payload is not JSON, not an object, or does not
            match the IngestionJob schema.
    """
    if isinstance(payload, (bytes, bytearray)):
        try:
            payload = payload.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecodeError("Job payload is not valid UTF-8", exc) from exc

    if isinstance(payload, str):
        try:
            payload = json.loads(payload)
        except json.JSONDecodeError as exc:
            raise DecodeError(f"Job payload is not valid JSON: {exc.msg}", exc) from exc

    if not isinstance(payload, dict):
        raise DecodeError(
            f"Job payload must be an object, got {type(payload).__name__}"
        )

    try:
        return IngestionJob.model_validate(payload)
    except ValidationError as exc:
        fields = ", ".join(
            ".".join(str(p) for p in err["loc"]) or "<root>"
            for err in exc.errors()
        )
        raise DecodeError(f"Job payload failed validation ({fields})", exc) from exc


def encode_job(job: IngestionJob, as_json_string: bool = False) -> dict[str, Any] | str:
    """Producer-side encoding; JSON string form for compatibility mode."""
    payload = job.to_payload()
    if as_json_string:
        return json.dumps(payload)
    return payload
