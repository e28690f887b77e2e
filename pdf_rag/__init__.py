# =============================================================================
# pdf_rag — Retrieval-Augmented Chat over Uploaded PDFs
# =============================================================================
#   - api/: FastAPI routers (upload, chat, health, admin)
#   - services/: loader, chunker, embedder, vector store, LLM, retrieval
#   - workers/: Celery ingestion queue, pipeline, dead-letter store
#   - models/: Job payloads and API response schemas
# =============================================================================
