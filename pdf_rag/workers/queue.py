# =============================================================================
# Job Producer — Enqueue Side of the Ingestion Queue
# =============================================================================
# The upload handler hands a saved file to the worker through here. The
# message is task "file-ready" on queue "file-upload-queue" with the job
# body as its single argument (object, or JSON string in compatibility
# mode). The returned job id is the Celery task id.
# =============================================================================

from __future__ import annotations

import logging

from celery import Celery
from celery.result import AsyncResult

from pdf_rag.config import Settings
from pdf_rag.models.jobs import IngestionJob, encode_job

logger = logging.getLogger(__name__)


class JobProducer:
    """Sends IngestionJobs to the worker and looks up their status."""

    def __init__(
        self,
        app: Celery,
        queue_name: str = "file-upload-queue",
        job_name: str = "file-ready",
        json_payloads: bool = False,
    ) -> None:
        self._app = app
        self.queue_name = queue_name
        self.job_name = job_name
        self.json_payloads = json_payloads

    @classmethod
    def from_settings(cls, settings: Settings, app: Celery | None = None) -> JobProducer:
        if app is None:
            from pdf_rag.workers.celery_app import celery_app as app
        return cls(
            app,
            queue_name=settings.queue_name,
            job_name=settings.queue_job_name,
            json_payloads=settings.queue_json_payloads,
        )

    def enqueue(self, job: IngestionJob) -> str:
        """
        Publish `job`; returns the queue-assigned job id.

        Raises:
            kombu / redis errors if the broker is unreachable. The upload
            handler reports those as a failed upload.
        """
        payload = encode_job(job, as_json_string=self.json_payloads)
        result = self._app.send_task(
            self.job_name,
            args=[payload],
            queue=self.queue_name,
        )
        logger.info(
            "Enqueued ingestion job %s for '%s' (queue=%s)",
            result.id, job.filename, self.queue_name,
        )
        return result.id

    def status(self, job_id: str) -> AsyncResult:
        return AsyncResult(job_id, app=self._app)

    def close(self) -> None:
        self._app.close()
