# =============================================================================
# API Dependencies — Service Handles for Route Handlers
# =============================================================================
#
# The handles are created once in the application lifespan (main.py) and
# stored on app.state. Route handlers receive them through these
# dependencies, which tests replace via app.dependency_overrides.
# =============================================================================

from __future__ import annotations

from fastapi import Request

from pdf_rag.services.retrieval import RetrievalService
from pdf_rag.services.storage import DocumentStore
from pdf_rag.workers.dead_letter import DeadLetterStore
from pdf_rag.workers.queue import JobProducer


def get_document_store(request: Request) -> DocumentStore:
    return request.app.state.document_store


def get_job_producer(request: Request) -> JobProducer:
    return request.app.state.job_producer


def get_retrieval_service(request: Request) -> RetrievalService:
    return request.app.state.retrieval_service


def get_dead_letter_store(request: Request) -> DeadLetterStore:
    return request.app.state.dead_letter_store
