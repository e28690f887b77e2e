# =============================================================================
# Vector Store Adapter — Protocol + ChromaDB Implementation
# =============================================================================
#
# One named collection (default "pdf-docs") holds every chunk of every
# document. The adapter offers exactly what the core needs:
#
#   collection_exists()          — state check, no side effects
#   ensure_collection(dimension) — idempotent create, dimension fixed once
#   upsert(embedded_chunks)      — one logical batch per document
#   search(vector, top_k)        — async k-NN, highest similarity first
#
# Protocol (structural typing) rather than an ABC: tests pass any object
# with the right methods.
#
# ARCHITECTURE:
#   VectorStore (Protocol)
#   └── ChromaVectorStore — ChromaDB (in-process or client/server)
#       ├── ensure_collection() — lock + get_or_create_collection
#       ├── upsert()            — sync (called from Celery worker threads)
#       └── search()            — async via asyncio.to_thread() + wait_for
#
# Chroma's HTTP client has no request timeout, so every synchronous store
# call goes through _call(): it waits at most `timeout` seconds on a small
# thread pool and raises TimeoutError otherwise.
# =============================================================================

from __future__ import annotations

import asyncio
import concurrent.futures
import hashlib
import logging
import threading
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol
from urllib.parse import urlparse

import chromadb
from chromadb.config import Settings as ChromaSettings

from pdf_rag.config import Settings
from pdf_rag.errors import StoreBootstrapError, UpsertError
from pdf_rag.services.chunker import DocumentChunk
from pdf_rag.services.embedder import EmbeddedChunk

logger = logging.getLogger(__name__)

DEFAULT_MAX_BATCH_SIZE = 5000


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass
class VectorSearchResult:
    """
    A single result from vector similarity search.

    similarity_score is cosine similarity (1 - cosine distance); higher is
    more relevant.
    """

    chunk_id: str
    content: str
    page_number: int | None
    similarity_score: float
    metadata: dict = field(default_factory=dict)
    vector: list[float] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Protocol Definition
# ---------------------------------------------------------------------------


class VectorStore(Protocol):
    """Interface the ingestion worker and retrieval service depend on."""

    collection_name: str

    def collection_exists(self) -> bool:
        ...

    def collection_dimension(self) -> int | None:
        """Dimension recorded at creation, or None if unknown/absent."""
        ...

    def ensure_collection(self, dimension: int) -> bool:
        """
        Make sure the collection exists with `dimension`.

        Returns:
            True if this call created it, False if it already existed.

        Raises:
            StoreBootstrapError: On store failure, or (non-retryable) when
                the existing collection has a different dimension.
        """
        ...

    def upsert(self, chunks: Sequence[EmbeddedChunk]) -> list[str]:
        """
        Write all chunks of one document; returns their ids.

        Raises:
            UpsertError: If any chunk could not be written. Chunks this
                call added (ids not stored before it) are removed again
                before raising.
        """
        ...

    async def search(self, query_vector: list[float], top_k: int = 2) -> list[VectorSearchResult]:
        ...

    def count(self) -> int:
        ...

    def close(self) -> None:
        ...


# ---------------------------------------------------------------------------
# Chunk Identity
# ---------------------------------------------------------------------------


def chunk_id(chunk: DocumentChunk) -> str:
    """
    Deterministic id of a chunk: filename, stored-file hash, ordinal.

    The same job delivered twice produces the same ids, so the second
    upsert overwrites the first instead of duplicating it. Two uploads of
    files with the same name get different ids (different stored paths).
    """
    source_path = str(chunk.metadata.get("source_path", ""))
    digest = hashlib.sha1(source_path.encode("utf-8")).hexdigest()[:12]
    return f"{chunk.source_document}:{digest}:{chunk.ordinal}"


# ---------------------------------------------------------------------------
# Client Factory
# ---------------------------------------------------------------------------

# Chroma refuses a second in-process client with different settings, so
# every client in the process is built with these.
_CHROMA_SETTINGS = ChromaSettings(anonymized_telemetry=False)


def create_chroma_client(chroma_url: str | None = None, default_port: int = 8000):
    """
    Build a Chroma client.

    - chroma_url set (e.g. "http://chroma:8000"): client/server mode
    - chroma_url unset: in-process ephemeral client
    """
    if not chroma_url:
        return chromadb.EphemeralClient(settings=_CHROMA_SETTINGS)

    parsed = urlparse(chroma_url if "://" in chroma_url else f"http://{chroma_url}")
    return chromadb.HttpClient(
        host=parsed.hostname or "localhost",
        port=parsed.port or default_port,
        ssl=parsed.scheme == "https",
        settings=_CHROMA_SETTINGS,
    )


# ---------------------------------------------------------------------------
# Implementation: ChromaDB
# ---------------------------------------------------------------------------


class ChromaVectorStore:
    """
    ChromaDB-backed vector store over a single named collection.

    The collection uses cosine distance and records its vector dimension
    in the collection metadata ("dimension"). Every store call is bounded
    by `timeout` seconds.
    """

    def __init__(
        self,
        client: Any,
        collection_name: str = "pdf-docs",
        timeout: float = 15.0,
        max_workers: int = 32,
    ) -> None:
        self._client = client
        self.collection_name = collection_name
        self.timeout = timeout
        self._collection = None
        self._lock = threading.Lock()
        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="chroma-call",
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> ChromaVectorStore:
        client = create_chroma_client(settings.chroma_url, settings.chroma_port)
        logger.info(
            "Using ChromaDB vector store (collection=%s, mode=%s)",
            settings.collection_name,
            "client/server" if settings.chroma_url else "in-process",
        )
        return cls(
            client=client,
            collection_name=settings.collection_name,
            timeout=settings.vectorstore_timeout,
            max_workers=max(settings.worker_concurrency, 4),
        )

    def _call(self, fn, /, *args, **kwargs):
        """
        Run one blocking Chroma call, waiting at most `timeout` seconds.

        A call that times out keeps its pool thread until the store
        answers; the caller gets TimeoutError straight away.
        """
        future = self._executor.submit(fn, *args, **kwargs)
        try:
            return future.result(timeout=self.timeout)
        except concurrent.futures.TimeoutError:
            future.cancel()
            name = getattr(fn, "__name__", "call")
            raise TimeoutError(
                f"Vector store did not answer {name}() within {self.timeout}s"
            ) from None

    # -----------------------------------------------------------------------
    # Collection lifecycle
    # -----------------------------------------------------------------------

    def collection_exists(self) -> bool:
        # list_collections() returns names on some Chroma versions and
        # Collection objects on others.
        names = {
            getattr(c, "name", c)
            for c in self._call(self._client.list_collections)
        }
        return self.collection_name in names

    def collection_dimension(self) -> int | None:
        collection = self._open_collection()
        if collection is None:
            return None
        dimension = (collection.metadata or {}).get("dimension")
        return int(dimension) if dimension is not None else None

    def ensure_collection(self, dimension: int) -> bool:
        with self._lock:
            try:
                existed = self.collection_exists()
                if existed:
                    collection = self._call(
                        self._client.get_collection, name=self.collection_name,
                    )
                else:
                    collection = self._create_collection(dimension)
            except StoreBootstrapError:
                raise
            except Exception as exc:
                raise StoreBootstrapError(
                    f"Could not open or create collection "
                    f"'{self.collection_name}': {exc}",
                    exc,
                ) from exc

            stored = (collection.metadata or {}).get("dimension")
            if stored is not None and int(stored) != dimension:
                raise StoreBootstrapError(
                    f"Collection '{self.collection_name}' has dimension {stored}, "
                    f"embeddings have dimension {dimension}",
                    retryable=False,
                )

            self._collection = collection

        if not existed:
            logger.info(
                "Created collection '%s' (dimension=%d, space=cosine)",
                self.collection_name, dimension,
            )
        return not existed

    def _create_collection(self, dimension: int):
        """get_or_create, then re-check state if another writer won the race."""
        try:
            return self._call(
                self._client.get_or_create_collection,
                name=self.collection_name,
                metadata={"hnsw:space": "cosine", "dimension": dimension},
            )
        except Exception as exc:
            if not self.collection_exists():
                raise StoreBootstrapError(
                    f"Could not create collection '{self.collection_name}': {exc}",
                    exc,
                ) from exc
            logger.info(
                "Collection '%s' was created concurrently; using it",
                self.collection_name,
            )
            return self._call(self._client.get_collection, name=self.collection_name)

    def _open_collection(self):
        if self._collection is None and self.collection_exists():
            self._collection = self._call(
                self._client.get_collection, name=self.collection_name,
            )
        return self._collection

    def _require_collection(self):
        collection = self._open_collection()
        if collection is None:
            raise LookupError(f"Collection '{self.collection_name}' does not exist")
        return collection

    # -----------------------------------------------------------------------
    # Writes
    # -----------------------------------------------------------------------

    def upsert(self, chunks: Sequence[EmbeddedChunk]) -> list[str]:
        if not chunks:
            return []

        try:
            collection = self._require_collection()
        except Exception as exc:
            raise UpsertError(f"Cannot upsert: {exc}", exc) from exc

        ids = [chunk_id(c.chunk) for c in chunks]
        documents = [c.chunk.text for c in chunks]
        embeddings = [c.vector for c in chunks]
        metadatas = [
            _sanitise_chroma_metadata({
                **c.chunk.metadata,
                "source": c.chunk.source_document,
                "ordinal": c.chunk.ordinal,
            })
            for c in chunks
        ]

        # A redelivered job finds its earlier chunks under the same ids;
        # only ids new to the store may be rolled back.
        try:
            existing = set(self._call(collection.get, ids=ids, include=[])["ids"])
        except Exception as exc:
            raise UpsertError(
                f"Cannot read existing chunks in '{self.collection_name}': {exc}",
                exc,
            ) from exc

        batch_size = self._max_batch_size()
        written: list[str] = []
        try:
            for start in range(0, len(ids), batch_size):
                end = start + batch_size
                self._call(
                    collection.upsert,
                    ids=ids[start:end],
                    documents=documents[start:end],
                    embeddings=embeddings[start:end],
                    metadatas=metadatas[start:end],
                )
                written.extend(ids[start:end])

            stored = self._call(collection.get, ids=ids, include=[])
            found = set(stored["ids"])
        except Exception as exc:
            self._rollback(collection, [i for i in written if i not in existing])
            raise UpsertError(
                f"Upsert of {len(ids)} chunks into '{self.collection_name}' "
                f"failed after {len(written)} written: {exc}",
                exc,
            ) from exc

        missing = [i for i in ids if i not in found]
        if missing:
            self._rollback(collection, [i for i in written if i not in existing])
            raise UpsertError(
                f"Store is missing {len(missing)} of {len(ids)} chunks after "
                f"upsert (first: {missing[0]})"
            )

        logger.info(
            "Upserted %d chunks into '%s' (%d new)",
            len(ids), self.collection_name, len(set(ids) - existing),
        )
        return ids

    def _max_batch_size(self) -> int:
        getter = getattr(self._client, "get_max_batch_size", None)
        if getter is None:
            return DEFAULT_MAX_BATCH_SIZE
        try:
            return max(int(self._call(getter)), 1)
        except Exception:
            return DEFAULT_MAX_BATCH_SIZE

    def _rollback(self, collection, ids: list[str]) -> None:
        if not ids:
            return
        try:
            self._call(collection.delete, ids=ids)
            logger.warning("Rolled back %d partially written chunks", len(ids))
        except Exception as exc:
            logger.error(
                "Rollback of %d chunks in '%s' failed: %s",
                len(ids), self.collection_name, exc,
            )

    # -----------------------------------------------------------------------
    # Reads
    # -----------------------------------------------------------------------

    async def search(
        self,
        query_vector: list[float],
        top_k: int = 2,
    ) -> list[VectorSearchResult]:
        """
        k-NN search; results sorted by similarity, highest first.

        Chroma's Python client is synchronous, so the query runs in a
        thread and is bounded by `timeout`.

        Raises:
            LookupError: If the collection does not exist yet.
            TimeoutError: If the store does not answer within `timeout`.
        """
        return await asyncio.wait_for(
            asyncio.to_thread(self._sync_search, query_vector, top_k),
            timeout=self.timeout,
        )

    def _sync_search(self, query_vector: list[float], top_k: int) -> list[VectorSearchResult]:
        collection = self._require_collection()
        results = collection.query(
            query_embeddings=[query_vector],
            n_results=top_k,
            include=["documents", "metadatas", "distances", "embeddings"],
        )

        search_results: list[VectorSearchResult] = []
        if not results or not results["ids"] or not results["ids"][0]:
            return search_results

        distances = results.get("distances")
        metadatas = results.get("metadatas")
        documents = results.get("documents")
        embeddings = results.get("embeddings")

        for i, chroma_id in enumerate(results["ids"][0]):
            distance = distances[0][i] if distances is not None else 0.0
            metadata = dict(metadatas[0][i] or {}) if metadatas is not None else {}
            content = documents[0][i] if documents is not None else ""
            vector = (
                [float(x) for x in embeddings[0][i]]
                if embeddings is not None
                else []
            )
            page = metadata.get("page_number")
            search_results.append(VectorSearchResult(
                chunk_id=chroma_id,
                content=content or "",
                page_number=int(page) if isinstance(page, (int, float)) else None,
                similarity_score=round(1.0 - float(distance), 4),
                metadata=metadata,
                vector=vector,
            ))

        # Stable sort: equal scores keep the store's order.
        search_results.sort(key=lambda r: r.similarity_score, reverse=True)
        return search_results

    def count(self) -> int:
        collection = self._open_collection()
        return self._call(collection.count) if collection is not None else 0

    def close(self) -> None:
        self._collection = None
        self._executor.shutdown(wait=False, cancel_futures=True)


# ---------------------------------------------------------------------------
# Internal Helpers
# ---------------------------------------------------------------------------


def _sanitise_chroma_metadata(metadata: dict) -> dict:
    """
    Sanitise metadata for ChromaDB compatibility.

    ChromaDB requires all metadata values to be str, int, float, or bool:
    - list → comma-separated string
    - None → dropped
    - anything else → str()
    """
    sanitised = {}
    for key, value in metadata.items():
        if value is None:
            continue
        if isinstance(value, list):
            sanitised[key] = ",".join(str(v) for v in value)
        elif isinstance(value, (str, int, float, bool)):
            sanitised[key] = value
        else:
            sanitised[key] = str(value)
    return sanitised
