# =============================================================================
# Shared Test Fixtures
# =============================================================================
#
# Everything runs in-process: a fake OpenAI embeddings client with
# deterministic vectors, and ChromaDB's ephemeral client with a unique
# collection per test. No API keys, broker or network needed.
# =============================================================================

from __future__ import annotations

import asyncio
import hashlib
import itertools
import math
from types import SimpleNamespace

import pytest

from pdf_rag.services.embedder import EmbeddingClient
from pdf_rag.services.vectorstore import ChromaVectorStore, create_chroma_client

EMBEDDING_DIM = 16

_collection_counter = itertools.count(1)


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


def fake_vector(text: str, dim: int = EMBEDDING_DIM) -> list[float]:
    """Bag-of-words hashed into `dim` buckets, L2-normalised."""
    vector = [0.0] * dim
    for word in text.lower().split():
        bucket = int(hashlib.sha1(word.encode("utf-8")).hexdigest(), 16) % dim
        vector[bucket] += 1.0
    norm = math.sqrt(sum(v * v for v in vector)) or 1.0
    return [v / norm for v in vector]


class FakeEmbeddingsAPI:
    """Stands in for `OpenAI().embeddings`; records every call."""

    def __init__(self, dim: int = EMBEDDING_DIM) -> None:
        self.dim = dim
        self.calls: list[list[str]] = []
        self.fail_with: Exception | None = None

    def create(self, model: str, input: list[str], dimensions: int | None = None):
        self.calls.append(list(input))
        if self.fail_with is not None:
            raise self.fail_with
        return SimpleNamespace(
            data=[
                SimpleNamespace(index=i, embedding=fake_vector(text, self.dim))
                for i, text in enumerate(input)
            ],
            model=model,
        )


class FakeOpenAIClient:
    def __init__(self, dim: int = EMBEDDING_DIM) -> None:
        self.embeddings = FakeEmbeddingsAPI(dim)
        self.closed = False

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_openai() -> FakeOpenAIClient:
    return FakeOpenAIClient()


@pytest.fixture
def embedder(fake_openai: FakeOpenAIClient) -> EmbeddingClient:
    return EmbeddingClient(
        api_key="",
        model="fake-embedding-model",
        client=fake_openai,
    )


def unique_collection_name(prefix: str = "test_pdf_docs") -> str:
    return f"{prefix}_{next(_collection_counter)}"


@pytest.fixture
def chroma_client():
    return create_chroma_client(None)


@pytest.fixture
def vector_store(chroma_client) -> ChromaVectorStore:
    """Fresh store over a collection name no other test uses."""
    return ChromaVectorStore(chroma_client, collection_name=unique_collection_name())
