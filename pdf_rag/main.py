# =============================================================================
# FastAPI Application — Entry Point
# =============================================================================
#
# Run the API:     uvicorn pdf_rag.main:app --host 0.0.0.0 --port 8000
# Run the worker:  celery -A pdf_rag.workers.celery_app worker -Q file-upload-queue
#
# The lifespan builds every outbound client once (embeddings, Chroma, LLM,
# Celery producer, dead-letter Redis) and closes them on shutdown. Missing
# credentials abort startup with ConfigurationError.
# =============================================================================

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from pdf_rag.api import admin, chat, health, upload
from pdf_rag.config import Settings, settings
from pdf_rag.logging_config import configure_logging
from pdf_rag.services.embedder import EmbeddingClient
from pdf_rag.services.llm import create_llm_provider
from pdf_rag.services.retrieval import RetrievalService
from pdf_rag.services.storage import DocumentStore
from pdf_rag.services.vectorstore import ChromaVectorStore
from pdf_rag.workers.dead_letter import DeadLetterStore
from pdf_rag.workers.queue import JobProducer

logger = logging.getLogger(__name__)


def _build_state(app: FastAPI, config: Settings) -> None:
    embedder = EmbeddingClient.from_settings(config)
    vector_store = ChromaVectorStore.from_settings(config)
    llm = create_llm_provider(config)

    app.state.embedder = embedder
    app.state.vector_store = vector_store
    app.state.llm = llm
    app.state.retrieval_service = RetrievalService(
        embedder=embedder,
        vector_store=vector_store,
        llm=llm,
        top_k=config.retrieval_top_k,
        embed_timeout=config.embedding_timeout,
        llm_timeout=config.llm_timeout,
    )
    app.state.document_store = DocumentStore(config.upload_dir)
    app.state.job_producer = JobProducer.from_settings(config)
    app.state.dead_letter_store = DeadLetterStore.from_settings(config)


async def _close_state(app: FastAPI) -> None:
    for name in ("embedder", "vector_store", "job_producer", "dead_letter_store"):
        resource = getattr(app.state, name, None)
        if resource is None:
            continue
        try:
            resource.close()
        except Exception as exc:
            logger.warning("Error closing %s: %s", name, exc)

    llm = getattr(app.state, "llm", None)
    if llm is not None:
        try:
            await llm.close()
        except Exception as exc:
            logger.warning("Error closing llm: %s", exc)


def create_app(config: Settings | None = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        config: Settings to use; defaults to the process-wide settings.
    """
    config = config or settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(config.log_level)
        config.require_credentials()
        _build_state(app, config)
        logger.info(
            "%s %s started (collection=%s, queue=%s, llm=%s/%s)",
            config.app_name, config.app_version, config.collection_name,
            config.queue_name, config.llm_provider, config.llm_model,
        )
        yield
        logger.info("Shutting down, closing clients")
        await _close_state(app)

    app = FastAPI(
        title=config.app_name,
        version=config.app_version,
        description="Upload PDFs and chat with them: asynchronous ingestion "
        "into a vector store, retrieval-augmented answers.",
        debug=config.debug,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_allow_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router)
    app.include_router(upload.router)
    app.include_router(chat.router)
    app.include_router(admin.router)

    return app


app = create_app()
