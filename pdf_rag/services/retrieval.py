# =============================================================================
# Query/Retrieval Service — Retrieval-Augmented Answering
# =============================================================================
#
#   answer(query)
#     1. EMBED     — same EmbeddingClient (same model) as ingestion
#     2. RETRIEVE  — top-k chunks from the collection, highest similarity first
#     3. AUGMENT   — system prompt = instruction + retrieved chunks as JSON
#     4. GENERATE  — [system, user(query verbatim)] → completion provider
#
# Failures in 1–2 raise RetrievalError, failures in 4 raise GenerationError.
# Either way the caller gets no QueryResult: never a partial answer.
#
# The service holds only injected, read-only handles, so one instance is
# shared by all concurrent requests.
# =============================================================================

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field

from pdf_rag.errors import GenerationError, RetrievalError
from pdf_rag.services.embedder import EmbeddingClient
from pdf_rag.services.llm import LLMProvider
from pdf_rag.services.vectorstore import VectorSearchResult, VectorStore

logger = logging.getLogger(__name__)

SYSTEM_INSTRUCTION = (
    "You are a helpful AI assistant who answers the user query based on "
    "the available context from PDF files.\n"
    "Use only the context below. If the context does not contain the "
    "answer, say so."
)


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass
class QueryResult:
    """The answer to one query plus the chunks it was grounded on."""

    query: str
    answer: str
    retrieved_chunks: list[VectorSearchResult] = field(default_factory=list)
    model: str = ""


# ---------------------------------------------------------------------------
# Prompt Assembly
# ---------------------------------------------------------------------------


def serialize_context(chunks: list[VectorSearchResult]) -> str:
    """Retrieved chunks as a JSON array of {pageContent, metadata}."""
    return json.dumps(
        [{"pageContent": c.content, "metadata": c.metadata} for c in chunks],
        ensure_ascii=False,
    )


def build_system_prompt(chunks: list[VectorSearchResult]) -> str:
    return f"{SYSTEM_INSTRUCTION}\n\nContext: {serialize_context(chunks)}"


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class RetrievalService:
    """Embeds a query, retrieves context, and asks the LLM."""

    def __init__(
        self,
        embedder: EmbeddingClient,
        vector_store: VectorStore,
        llm: LLMProvider,
        top_k: int = 2,
        embed_timeout: float = 30.0,
        llm_timeout: float = 60.0,
    ) -> None:
        self._embedder = embedder
        self._vector_store = vector_store
        self._llm = llm
        self.top_k = top_k
        self._embed_timeout = embed_timeout
        self._llm_timeout = llm_timeout

    async def retrieve(self, query: str) -> list[VectorSearchResult]:
        """
        Steps 1–2: top-k chunks for `query`, highest similarity first.

        Raises:
            RetrievalError: If embedding or search fails or times out.
        """
        try:
            vector = await asyncio.wait_for(
                asyncio.to_thread(self._embedder.embed_query, query),
                timeout=self._embed_timeout,
            )
        except TimeoutError as exc:
            raise RetrievalError("Timed out embedding the query", exc) from exc
        except Exception as exc:
            raise RetrievalError(f"Could not embed the query: {exc}", exc) from exc

        try:
            chunks = await self._vector_store.search(vector, top_k=self.top_k)
        except TimeoutError as exc:
            raise RetrievalError("Timed out searching the vector store", exc) from exc
        except Exception as exc:
            raise RetrievalError(f"Vector search failed: {exc}", exc) from exc

        logger.info(
            "Retrieved %d chunks (top_k=%d) for query='%s'",
            len(chunks), self.top_k, query[:80],
        )
        return chunks

    async def answer(self, query: str) -> QueryResult:
        """
        Answer `query` from the indexed documents.

        Raises:
            RetrievalError: Steps 1–2 failed.
            GenerationError: The completion provider failed, timed out, or
                returned an empty answer.
        """
        chunks = await self.retrieve(query)

        try:
            response = await asyncio.wait_for(
                self._llm.complete(
                    messages=[{"role": "user", "content": query}],
                    system=build_system_prompt(chunks),
                ),
                timeout=self._llm_timeout,
            )
        except TimeoutError as exc:
            raise GenerationError("Timed out waiting for the completion provider", exc) from exc
        except Exception as exc:
            raise GenerationError(f"Completion provider failed: {exc}", exc) from exc

        if not response.content.strip():
            raise GenerationError("Completion provider returned an empty answer")

        logger.info(
            "Answered query (model=%s, input_tokens=%d, output_tokens=%d)",
            response.model, response.input_tokens, response.output_tokens,
        )
        return QueryResult(
            query=query,
            answer=response.content,
            retrieved_chunks=chunks,
            model=response.model,
        )
