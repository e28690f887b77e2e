# =============================================================================
# Workers Package — Asynchronous Ingestion
# =============================================================================
#   - celery_app.py: Celery application (queue, pool, reliability settings)
#   - queue.py: JobProducer, the enqueue side used by the upload handler
#   - tasks.py: "file-ready" task — decode, process, retry, dead-letter
#   - pipeline.py: IngestionWorker state machine (load → chunk → embed →
#     ensure collection → upsert)
#   - dead_letter.py: Redis-backed record of jobs that failed for good
# =============================================================================
