# =============================================================================
# Embedding Client — Batch Vector Generation (Provider-Agnostic)
# =============================================================================
#
# Maps text → fixed-dimension vectors using any OpenAI-compatible
# embeddings API (OpenAI, DashScope, a local TEI/vLLM server, ...).
#
# Used identically at ingestion time (per chunk, step 3) and at query time
# (per query string). INVARIANT: both sides must use the same model and
# dimensions. Vectors from different models are not comparable, and the
# store cannot tell; retrieval quality just silently drops. The model id is
# therefore recorded in every chunk's metadata.
#
# No retry logic here: failed jobs are redelivered by the queue, failed
# queries are reported to the caller.
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

import openai
from openai import OpenAI

from pdf_rag.config import Settings
from pdf_rag.errors import ConfigurationError, EmbeddingError
from pdf_rag.services.chunker import DocumentChunk

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EmbeddedChunk:
    """A chunk plus its vector. dimension == len(vector)."""

    chunk: DocumentChunk
    vector: list[float]
    dimension: int


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class EmbeddingClient:
    """
    Thin wrapper around the OpenAI embeddings endpoint.

    Construct once at startup (see from_settings) and share; the underlying
    OpenAI client keeps a connection pool and is thread-safe.
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        dimensions: int | None = None,
        base_url: str | None = None,
        batch_size: int = 100,
        timeout: float = 30.0,
        client: OpenAI | None = None,
    ) -> None:
        if client is None:
            if not api_key:
                raise ConfigurationError(
                    "No API key configured for embeddings. "
                    "Set OPENAI_API_KEY or LLM_API_KEY in .env"
                )
            client_kwargs: dict = {"api_key": api_key, "timeout": timeout}
            if base_url:
                client_kwargs["base_url"] = base_url
            client = OpenAI(**client_kwargs)

        self._client = client
        self.model = model
        self.dimensions = dimensions
        self.batch_size = max(batch_size, 1)

        logger.info(
            "Initialized embedding client (model=%s, base_url=%s)",
            model, base_url or "https://api.openai.com/v1",
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> EmbeddingClient:
        return cls(
            api_key=settings.resolved_embedding_api_key or "",
            model=settings.embedding_model,
            dimensions=settings.embedding_dimensions,
            base_url=settings.embedding_base_url,
            batch_size=settings.embedding_batch_size,
            timeout=settings.embedding_timeout,
        )

    # -----------------------------------------------------------------------
    # Public API
    # -----------------------------------------------------------------------

    def embed_texts(self, texts: Sequence[str]) -> list[list[float]]:
        """
        Embed texts in sub-batches, returning vectors in input order.

        Raises:
            EmbeddingError: On any provider error or timeout, a missing
                vector, or vectors of differing dimension. No partial
                result is ever returned.
        """
        if not texts:
            return []

        vectors: list[list[float] | None] = [None] * len(texts)

        for i in range(0, len(texts), self.batch_size):
            batch = list(texts[i : i + self.batch_size])
            logger.debug(
                "Embedding batch %d–%d of %d texts (model=%s)",
                i + 1, i + len(batch), len(texts), self.model,
            )

            create_kwargs: dict = {"model": self.model, "input": batch}
            if self.dimensions:
                create_kwargs["dimensions"] = self.dimensions

            try:
                response = self._client.embeddings.create(**create_kwargs)
            except openai.APITimeoutError as exc:
                raise EmbeddingError(
                    f"Embedding request timed out (batch starting at {i})", exc,
                ) from exc
            except openai.OpenAIError as exc:
                raise EmbeddingError(
                    f"Embedding request failed (batch starting at {i}): {exc}", exc,
                ) from exc

            # Place by response index; items are not trusted to be in order.
            for item in response.data:
                if 0 <= item.index < len(batch):
                    vectors[i + item.index] = list(item.embedding)

        missing = [n for n, v in enumerate(vectors) if not v]
        if missing:
            raise EmbeddingError(
                f"Provider returned no embedding for {len(missing)} of "
                f"{len(texts)} texts (first missing index {missing[0]})"
            )

        dims = {len(v) for v in vectors}
        if len(dims) != 1:
            raise EmbeddingError(f"Provider returned mixed vector dimensions: {sorted(dims)}")

        logger.info(
            "Generated %d embeddings (model=%s, dimension=%d)",
            len(texts), self.model, dims.pop(),
        )
        return vectors  # type: ignore[return-value]

    def embed_query(self, text: str) -> list[float]:
        """Embed a single query string with the ingestion model."""
        return self.embed_texts([text])[0]

    def embed_chunks(self, chunks: Sequence[DocumentChunk]) -> list[EmbeddedChunk]:
        """
        Embed every chunk of a document; all-or-nothing, order preserved.

        Raises:
            EmbeddingError: If any chunk cannot be embedded.
        """
        vectors = self.embed_texts([c.text for c in chunks])
        return [
            EmbeddedChunk(
                chunk=DocumentChunk(
                    source_document=chunk.source_document,
                    ordinal=chunk.ordinal,
                    text=chunk.text,
                    metadata={**chunk.metadata, "embedding_model": self.model},
                ),
                vector=vector,
                dimension=len(vector),
            )
            for chunk, vector in zip(chunks, vectors, strict=True)
        ]

    def close(self) -> None:
        self._client.close()
