# =============================================================================
# Unit Tests — Embedding Client
# =============================================================================
#
# The OpenAI client is replaced by the in-memory fake from conftest.py
# (or a MagicMock where a provider failure is simulated).
# =============================================================================

from types import SimpleNamespace
from unittest.mock import MagicMock

import httpx
import openai
import pytest

from pdf_rag.errors import ConfigurationError, EmbeddingError
from pdf_rag.services.chunker import DocumentChunk
from pdf_rag.services.embedder import EmbeddingClient


def _chunks(*texts: str) -> list[DocumentChunk]:
    return [
        DocumentChunk(source_document="doc.pdf", ordinal=i, text=t, metadata={"page_number": 1})
        for i, t in enumerate(texts)
    ]


class TestEmbedTexts:
    def test_empty_input_makes_no_call(self, embedder, fake_openai):
        assert embedder.embed_texts([]) == []
        assert fake_openai.embeddings.calls == []

    def test_vectors_in_input_order(self, embedder):
        vectors = embedder.embed_texts(["alpha", "beta", "gamma"])
        assert len(vectors) == 3
        assert vectors[0] == embedder.embed_query("alpha")
        assert vectors[2] == embedder.embed_query("gamma")

    def test_batches_respect_batch_size(self, fake_openai):
        client = EmbeddingClient(api_key="", model="m", batch_size=2, client=fake_openai)
        client.embed_texts(["a", "b", "c", "d", "e"])
        assert [len(batch) for batch in fake_openai.embeddings.calls] == [2, 2, 1]

    def test_out_of_order_response_placed_by_index(self):
        api = MagicMock()
        api.embeddings.create.return_value = SimpleNamespace(data=[
            SimpleNamespace(index=1, embedding=[0.0, 1.0]),
            SimpleNamespace(index=0, embedding=[1.0, 0.0]),
        ])
        client = EmbeddingClient(api_key="", model="m", client=api)
        assert client.embed_texts(["x", "y"]) == [[1.0, 0.0], [0.0, 1.0]]

    def test_dimensions_forwarded(self):
        api = MagicMock()
        api.embeddings.create.return_value = SimpleNamespace(
            data=[SimpleNamespace(index=0, embedding=[0.5] * 4)]
        )
        client = EmbeddingClient(api_key="", model="m", dimensions=4, client=api)
        client.embed_query("q")
        assert api.embeddings.create.call_args.kwargs["dimensions"] == 4

    def test_provider_error_raises_embedding_error(self, embedder, fake_openai):
        request = httpx.Request("POST", "https://api.openai.com/v1/embeddings")
        fake_openai.embeddings.fail_with = openai.APIConnectionError(request=request)
        with pytest.raises(EmbeddingError) as exc_info:
            embedder.embed_texts(["a"])
        assert exc_info.value.retryable is True
        assert exc_info.value.step == "embedding"

    def test_timeout_raises_embedding_error(self, embedder, fake_openai):
        request = httpx.Request("POST", "https://api.openai.com/v1/embeddings")
        fake_openai.embeddings.fail_with = openai.APITimeoutError(request=request)
        with pytest.raises(EmbeddingError, match="timed out"):
            embedder.embed_texts(["a"])

    def test_missing_vector_raises(self):
        api = MagicMock()
        api.embeddings.create.return_value = SimpleNamespace(
            data=[SimpleNamespace(index=0, embedding=[1.0])]
        )
        client = EmbeddingClient(api_key="", model="m", client=api)
        with pytest.raises(EmbeddingError, match="no embedding"):
            client.embed_texts(["a", "b"])

    def test_mixed_dimensions_raise(self):
        api = MagicMock()
        api.embeddings.create.return_value = SimpleNamespace(data=[
            SimpleNamespace(index=0, embedding=[1.0, 0.0]),
            SimpleNamespace(index=1, embedding=[1.0]),
        ])
        client = EmbeddingClient(api_key="", model="m", client=api)
        with pytest.raises(EmbeddingError, match="mixed"):
            client.embed_texts(["a", "b"])


class TestEmbedChunks:
    def test_records_model_and_dimension(self, embedder):
        embedded = embedder.embed_chunks(_chunks("first", "second"))
        assert [e.chunk.ordinal for e in embedded] == [0, 1]
        assert all(e.dimension == len(e.vector) for e in embedded)
        assert embedded[0].chunk.metadata["embedding_model"] == "fake-embedding-model"
        assert embedded[0].chunk.metadata["page_number"] == 1
        assert embedded[1].chunk.source_document == "doc.pdf"

    def test_all_or_nothing(self, fake_openai):
        client = EmbeddingClient(api_key="", model="m", batch_size=1, client=fake_openai)
        original_create = fake_openai.embeddings.create

        def fail_on_second_batch(**kwargs):
            if len(fake_openai.embeddings.calls) == 1:
                fake_openai.embeddings.fail_with = openai.OpenAIError("quota exceeded")
            return original_create(**kwargs)

        fake_openai.embeddings.create = fail_on_second_batch
        with pytest.raises(EmbeddingError):
            client.embed_chunks(_chunks("one", "two", "three"))


class TestConstruction:
    def test_missing_api_key_is_configuration_error(self):
        with pytest.raises(ConfigurationError):
            EmbeddingClient(api_key="", model="m")

    def test_close_closes_client(self, embedder, fake_openai):
        embedder.close()
        assert fake_openai.closed is True
