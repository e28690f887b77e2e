# =============================================================================
# API Tests — HTTP Contract
# =============================================================================
#
# FastAPI TestClient with dependency_overrides: the lifespan never runs,
# so no credentials, broker or vector store are needed. Uploads go to
# tmp_path through the real DocumentStore.
# =============================================================================

from datetime import UTC, datetime
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from pdf_rag.api.deps import (
    get_dead_letter_store,
    get_document_store,
    get_job_producer,
    get_retrieval_service,
)
from pdf_rag.errors import GenerationError, RetrievalError
from pdf_rag.main import create_app
from pdf_rag.services.retrieval import QueryResult
from pdf_rag.services.storage import DocumentStore
from pdf_rag.services.vectorstore import VectorSearchResult
from pdf_rag.workers.dead_letter import DeadLetterEntry

PDF_BYTES = b"%PDF-1.4\n1 0 obj\n<<>>\nendobj\n%%EOF\n"


@pytest.fixture
def producer():
    mock = MagicMock()
    mock.enqueue.return_value = "job-123"
    return mock


@pytest.fixture
def retrieval_service():
    return MagicMock()


@pytest.fixture
def dead_letters():
    return MagicMock()


@pytest.fixture
def client(tmp_path, producer, retrieval_service, dead_letters):
    app = create_app()
    app.dependency_overrides[get_document_store] = lambda: DocumentStore(str(tmp_path))
    app.dependency_overrides[get_job_producer] = lambda: producer
    app.dependency_overrides[get_retrieval_service] = lambda: retrieval_service
    app.dependency_overrides[get_dead_letter_store] = lambda: dead_letters
    return TestClient(app)


class TestHealth:
    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json() == {"status": "OK"}


class TestUpload:
    def test_upload_enqueues_job(self, client, producer, tmp_path):
        response = client.post(
            "/upload/pdf",
            files={"pdf": ("sample.pdf", PDF_BYTES, "application/pdf")},
        )

        assert response.status_code == 200
        assert response.json() == {"message": "File uploaded", "job_id": "job-123"}

        job = producer.enqueue.call_args.args[0]
        assert job.filename == "sample.pdf"
        stored = Path(job.source_path)
        assert stored.parent == tmp_path.resolve()
        assert stored.name.endswith("-sample.pdf")
        assert stored.read_bytes() == PDF_BYTES

    def test_same_name_uploads_do_not_collide(self, client, producer):
        for _ in range(2):
            client.post("/upload/pdf", files={"pdf": ("same.pdf", PDF_BYTES, "application/pdf")})
        paths = {call.args[0].source_path for call in producer.enqueue.call_args_list}
        assert len(paths) == 2

    def test_missing_file_field(self, client, producer):
        response = client.post(
            "/upload/pdf",
            files={"document": ("sample.pdf", PDF_BYTES, "application/pdf")},
        )
        assert response.status_code == 400
        assert "error" in response.json()
        producer.enqueue.assert_not_called()

    def test_non_pdf_rejected(self, client, producer):
        response = client.post(
            "/upload/pdf",
            files={"pdf": ("notes.txt", b"hello", "text/plain")},
        )
        assert response.status_code == 400
        producer.enqueue.assert_not_called()

    def test_empty_file_rejected(self, client, producer):
        response = client.post(
            "/upload/pdf",
            files={"pdf": ("empty.pdf", b"", "application/pdf")},
        )
        assert response.status_code == 400
        producer.enqueue.assert_not_called()

    def test_broker_down_is_upload_failed(self, client, producer):
        producer.enqueue.side_effect = ConnectionError("redis unreachable")
        response = client.post(
            "/upload/pdf",
            files={"pdf": ("sample.pdf", PDF_BYTES, "application/pdf")},
        )
        assert response.status_code == 500
        assert response.json() == {"error": "Upload failed"}


class TestUploadStatus:
    def test_success_includes_report(self, client, producer):
        producer.status.return_value = SimpleNamespace(
            status="SUCCESS", result={"status": "completed", "chunk_count": 2},
        )
        body = client.get("/upload/status/job-123").json()
        assert body["status"] == "SUCCESS"
        assert body["report"]["chunk_count"] == 2
        assert body["error"] is None

    def test_failure_includes_error(self, client, producer):
        producer.status.return_value = SimpleNamespace(
            status="FAILURE", result=ValueError("not a valid PDF"),
        )
        body = client.get("/upload/status/job-123").json()
        assert body["status"] == "FAILURE"
        assert "not a valid PDF" in body["error"]

    def test_pending(self, client, producer):
        producer.status.return_value = SimpleNamespace(status="PENDING", result=None)
        body = client.get("/upload/status/unknown").json()
        assert body == {"job_id": "unknown", "status": "PENDING", "report": None, "error": None}


class TestChat:
    def test_answer_with_docs(self, client, retrieval_service):
        retrieval_service.answer = AsyncMock(return_value=QueryResult(
            query="How long is the warranty?",
            answer="Two years.",
            retrieved_chunks=[
                VectorSearchResult(
                    chunk_id="sample.pdf:abc:1",
                    content="Two year limited warranty.",
                    page_number=2,
                    similarity_score=0.91,
                    metadata={"source": "sample.pdf", "page_number": 2},
                ),
            ],
            model="test-model",
        ))

        response = client.get("/chat", params={"message": "How long is the warranty?"})

        assert response.status_code == 200
        assert response.json() == {
            "resultData": {
                "message": "Two years.",
                "docs": [{
                    "pageContent": "Two year limited warranty.",
                    "metadata": {"source": "sample.pdf", "page_number": 2},
                    "score": 0.91,
                }],
            },
        }
        retrieval_service.answer.assert_awaited_once_with("How long is the warranty?")

    def test_missing_message_is_validation_error(self, client):
        assert client.get("/chat").status_code == 422

    def test_blank_message_is_validation_error(self, client):
        assert client.get("/chat", params={"message": "   "}).status_code == 422

    @pytest.mark.parametrize("error", [
        RetrievalError("vector search failed"),
        GenerationError("provider returned 503"),
        RuntimeError("unexpected"),
    ])
    def test_failures_are_chat_failed(self, client, retrieval_service, error):
        retrieval_service.answer = AsyncMock(side_effect=error)
        response = client.get("/chat", params={"message": "anything"})
        assert response.status_code == 500
        assert response.json() == {"error": "Chat failed"}


class TestDeadLetters:
    def test_lists_entries(self, client, dead_letters):
        dead_letters.list_entries.return_value = [DeadLetterEntry(
            job_id="job-9",
            step="loading",
            error_type="LoadError",
            message="not a valid PDF",
            payload={"filename": "bad.pdf"},
            attempts=1,
            failed_at=datetime(2026, 10, 19, 8, 0, tzinfo=UTC),
        )]
        dead_letters.count.return_value = 1

        body = client.get("/admin/dead-letters", params={"limit": 5}).json()

        dead_letters.list_entries.assert_called_once_with(5)
        assert body["total"] == 1
        assert body["entries"][0]["job_id"] == "job-9"
        assert body["entries"][0]["step"] == "loading"

    def test_redis_down(self, client, dead_letters):
        dead_letters.list_entries.side_effect = ConnectionError("down")
        response = client.get("/admin/dead-letters")
        assert response.status_code == 500
        assert response.json() == {"error": "Dead-letter lookup failed"}
