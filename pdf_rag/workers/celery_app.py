# =============================================================================
# Celery Application Configuration — the Job Queue
# =============================================================================
#
# The queue between the upload handler and the ingestion worker:
#
# ┌───────────┐  file-ready   ┌───────┐   ┌──────────────────────┐
# │  FastAPI  │──────────────▶│ Redis │──▶│ Celery worker        │
# │ (producer)│  queue:       │ db 0  │   │ pool=threads, 100    │
# └───────────┘  file-upload- └───────┘   │ load→chunk→embed→    │
#                queue                    │ ensure→upsert → ack  │
#                                         └──────────┬───────────┘
#                                  results (db 1) ◀──┤
#                                  dead letters (db 2) ◀── fatal/exhausted
#
# Delivery is at-least-once: a message is acknowledged only after the task
# function returns (acks_late), and a worker that dies mid-job leaves its
# message to be redelivered (reject_on_worker_lost). Duplicate deliveries
# are harmless because chunk ids are deterministic.
#
# Run a worker with:
#   celery -A pdf_rag.workers.celery_app worker -Q file-upload-queue --loglevel=INFO
# =============================================================================

from celery import Celery
from kombu import Queue

from pdf_rag.config import settings

celery_app = Celery(
    "pdf_rag.workers",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

celery_app.conf.update(
    # --- Serialization ---
    # JSON only: job payloads must be readable by non-Python producers.
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",

    # --- Routing ---
    # One well-known queue for ingestion jobs.
    task_default_queue=settings.queue_name,
    task_queues=(Queue(settings.queue_name),),
    task_routes={settings.queue_job_name: {"queue": settings.queue_name}},

    # --- Reliability ---
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    # Report STARTED so /upload/status can tell queued from in-progress.
    task_track_started=True,

    # --- Bounded pool with backpressure ---
    # Each of the worker_concurrency threads reserves one message at a
    # time. When all are busy nothing more is fetched; jobs wait in Redis.
    worker_pool=settings.worker_pool,
    worker_concurrency=settings.worker_concurrency,
    worker_prefetch_multiplier=1,

    # Redis transport: redeliver unacknowledged messages after this long.
    # Must exceed the hard time limit or long jobs get delivered twice.
    broker_transport_options={"visibility_timeout": settings.task_time_limit + 300},

    # --- Timeouts ---
    task_soft_time_limit=settings.task_soft_time_limit,
    task_time_limit=settings.task_time_limit,

    # --- Results ---
    result_expires=3600,

    # Logging is configured by pdf_rag.workers.tasks (setup_logging signal).
    worker_hijack_root_logger=False,

    include=["pdf_rag.workers.tasks"],
)
