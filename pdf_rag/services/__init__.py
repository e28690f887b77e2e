# =============================================================================
# Services Package — Business Logic
# =============================================================================
# Contains the core business logic, separated from API handlers and workers:
#   - storage.py: Document Store Adapter (uploads on local disk)
#   - loader.py: PDF loading with Docling, text grouped per page
#   - chunker.py: Token-based page chunking (tiktoken)
#   - embedder.py: Embedding client (OpenAI-compatible, batched)
#   - vectorstore.py: Vector store protocol + ChromaDB adapter
#   - llm.py: Completion providers (Anthropic, OpenAI-compatible)
#   - retrieval.py: Query/Retrieval service (embed → search → generate)
# =============================================================================
