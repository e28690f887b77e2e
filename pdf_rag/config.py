# =============================================================================
# Application Configuration — Pydantic Settings
# =============================================================================
#
# All runtime configuration lives here: queue/broker endpoints, provider
# credentials and model identifiers, vector store location, chunking and
# retrieval parameters, worker pool sizing and per-call timeouts.
#
# Pydantic Settings loads values in this priority order (highest first):
#   1. Environment variables (e.g., `CELERY_BROKER_URL=...`)
#   2. Values from the .env file
#   3. Default values defined below
#
# USAGE:
#   from pdf_rag.config import settings
#   print(settings.collection_name)
# =============================================================================

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from pdf_rag.errors import ConfigurationError


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Defaults target local development (Redis and Chroma on localhost).
    """

    # -------------------------------------------------------------------------
    # Application
    # -------------------------------------------------------------------------
    app_name: str = "PDF RAG Service"
    app_version: str = "0.1.0"
    debug: bool = False
    log_level: str = "INFO"
    cors_allow_origins: list[str] = Field(default_factory=lambda: ["*"])

    # -------------------------------------------------------------------------
    # Redis / Celery — Job Queue
    # -------------------------------------------------------------------------
    # Redis database numbers isolate different concerns:
    #   db 0 = Celery broker (the ingestion queue)
    #   db 1 = Celery result backend (job status for polling)
    #   db 2 = Dead-letter list (failed jobs awaiting an operator)
    # -------------------------------------------------------------------------
    celery_broker_url: str = "redis://localhost:6379/0"
    celery_result_backend: str = "redis://localhost:6379/1"

    # Single well-known topic shared by the upload handler and the worker.
    queue_name: str = "file-upload-queue"
    queue_job_name: str = "file-ready"
    # Compatibility mode: send the job body as a JSON-encoded string
    # instead of a JSON object. The worker accepts both either way.
    queue_json_payloads: bool = False

    # -------------------------------------------------------------------------
    # Worker Pool
    # -------------------------------------------------------------------------
    # worker_concurrency bounds the number of jobs in flight per worker.
    # With prefetch_multiplier=1 the worker stops reserving messages once
    # every slot is busy, so the remaining jobs wait in the broker.
    # -------------------------------------------------------------------------
    worker_concurrency: int = 100
    worker_pool: str = "threads"
    ingest_max_retries: int = 3
    ingest_retry_backoff: int = 30  # seconds; doubled on each retry
    task_soft_time_limit: int = 300
    task_time_limit: int = 600

    # -------------------------------------------------------------------------
    # Dead-Letter Store
    # -------------------------------------------------------------------------
    dead_letter_redis_url: str = "redis://localhost:6379/2"
    dead_letter_key: str = "pdf_rag:dead_letter"
    dead_letter_max_entries: int = 1000

    # -------------------------------------------------------------------------
    # File Upload
    # -------------------------------------------------------------------------
    # Uploaded PDFs are written here before the worker picks them up.
    # API and worker must see the same filesystem.
    # -------------------------------------------------------------------------
    upload_dir: str = "/tmp"

    # -------------------------------------------------------------------------
    # Embedding Configuration
    # -------------------------------------------------------------------------
    # The SAME model and dimensions are used at ingestion time and at query
    # time. Changing either after documents have been ingested silently
    # degrades retrieval: re-ingest into a fresh collection instead.
    # -------------------------------------------------------------------------
    openai_api_key: str = ""
    embedding_base_url: str | None = None
    embedding_model: str = "text-embedding-3-small"
    embedding_dimensions: int | None = 1536
    embedding_batch_size: int = 100  # Chunks per embeddings API call
    embedding_timeout: float = 30.0

    # -------------------------------------------------------------------------
    # LLM Configuration — Completion Provider
    # -------------------------------------------------------------------------
    # Two provider types:
    #   - "anthropic": Claude via native Anthropic SDK
    #   - "openai_compatible": any OpenAI-compatible API (Groq, DeepSeek,
    #     Qwen, OpenAI itself)
    #
    # Example configs:
    #   Groq:    provider=openai_compatible, base_url=https://api.groq.com/openai/v1,
    #            model=moonshotai/kimi-k2-instruct-0905
    #   Claude:  provider=anthropic, model=claude-sonnet-4-6
    # -------------------------------------------------------------------------
    llm_provider: str = "openai_compatible"
    llm_base_url: str | None = "https://api.groq.com/openai/v1"
    llm_api_key: str | None = None
    anthropic_api_key: str = ""
    llm_model: str = "moonshotai/kimi-k2-instruct-0905"
    llm_temperature: float = 0.0
    llm_max_tokens: int = 1024
    llm_timeout: float = 60.0

    # -------------------------------------------------------------------------
    # Vector Store — ChromaDB
    # -------------------------------------------------------------------------
    # chroma_url unset → in-process client (local development, tests).
    # One collection for the whole corpus; its dimension is fixed the first
    # time a document is ingested.
    # -------------------------------------------------------------------------
    chroma_url: str | None = None
    chroma_port: int = 8000
    collection_name: str = "pdf-docs"
    vectorstore_timeout: float = 15.0

    # -------------------------------------------------------------------------
    # Chunking Configuration
    # -------------------------------------------------------------------------
    chunk_size: int = 512
    chunk_overlap: int = 50

    # -------------------------------------------------------------------------
    # Retrieval Configuration
    # -------------------------------------------------------------------------
    retrieval_top_k: int = 2

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # -------------------------------------------------------------------------
    # Derived values
    # -------------------------------------------------------------------------

    @property
    def resolved_embedding_api_key(self) -> str | None:
        """OPENAI_API_KEY first, then the shared LLM_API_KEY."""
        return self.openai_api_key or self.llm_api_key or None

    @property
    def resolved_llm_api_key(self) -> str | None:
        if self.llm_api_key:
            return self.llm_api_key
        if self.llm_provider == "anthropic":
            return self.anthropic_api_key or None
        return self.openai_api_key or None

    def require_credentials(self) -> None:
        """
        Fail fast when provider credentials are missing.

        Called once at API and worker startup. A process that cannot embed
        or generate must not start and accept work.

        Raises:
            ConfigurationError: listing every missing variable.
        """
        missing: list[str] = []
        if not self.resolved_embedding_api_key:
            missing.append("OPENAI_API_KEY (or LLM_API_KEY)")
        if not self.resolved_llm_api_key:
            if self.llm_provider == "anthropic":
                missing.append("ANTHROPIC_API_KEY (or LLM_API_KEY)")
            else:
                missing.append("LLM_API_KEY")
        if missing:
            raise ConfigurationError(
                "Missing required credentials: " + ", ".join(missing)
            )


@lru_cache
def get_settings() -> Settings:
    """
    Create and cache a Settings instance.

    Tests build their own Settings(...) and pass it to create_app() or
    the component constructors instead of patching this one.
    """
    return Settings()


# Module-level convenience instance.
settings = get_settings()
