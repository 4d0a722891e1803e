"""
Failure handler — records the one terminal failure of a job.

There is no in-process retry. A job either publishes or fails exactly
once; the only second chance is broker redelivery after a dispatcher
crash, which never reaches this module.

On failure:
    PROCESSING → FAILED   (error_kind, error_message, completed_at)
    dead-letter entry     (Redis list, for humans to review)
    upload_failed         (notification to the uploader)

The raw object is left in storage so the upload can be inspected or
re-driven by hand.

Each of the three writes is independent: a broken Redis does not stop
the job being marked failed, and a broken database does not stop the
uploader hearing about it.
"""

import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import update

from broker.queue import JobQueue
from models.enums import JobStatus, NotificationType
from models.errors import IngestError
from models.job import ProcessingJob
from worker.notifier import Notifier, OutgoingNotification

logger = logging.getLogger(__name__)


class FailureHandler:

    def __init__(self, session_factory, queue: JobQueue, notifier: Notifier):
        self._session_factory = session_factory
        self._queue = queue
        self._notifier = notifier

    async def handle(self, job: ProcessingJob, error: IngestError) -> None:
        failed_at = datetime.now(timezone.utc)
        logger.warning(
            f"Job {job.id} [{job.ticket_id}] failed: {error.code}: {error.message}"
        )

        # ── Step 1: terminal state ──────────────────────────────
        try:
            await self._mark_failed(job.id, error, failed_at)
        except Exception as e:
            logger.error(f"Could not mark job {job.id} failed: {e}", exc_info=True)

        # ── Step 2: dead-letter entry ───────────────────────────
        try:
            await self._queue.dead_letter({
                "job_id": str(job.id),
                "ticket_id": job.ticket_id,
                "error": error.message,
                "kind": error.code,
                "retryable": error.retryable,
                "failed_at": failed_at.isoformat(),
            })
        except Exception as e:
            logger.error(f"Could not dead-letter job {job.id}: {e}")

        # ── Step 3: tell the uploader ───────────────────────────
        self._notifier.notify(OutgoingNotification(
            recipient_id=job.uploader_id,
            type=NotificationType.UPLOAD_FAILED,
            payload={
                "ticket_id": job.ticket_id,
                "job_id": str(job.id),
                "title": job.title_text,
                "error": error.code,
                "message": error.message,
                "retryable": error.retryable,
            },
        ))

    async def _mark_failed(self, job_id: uuid.UUID, error: IngestError, failed_at: datetime) -> None:
        async with self._session_factory() as session:
            await session.execute(
                update(ProcessingJob)
                .where(ProcessingJob.id == job_id)
                .values(
                    status=JobStatus.FAILED.value,
                    error_kind=error.code,
                    error_message=error.message[:2000],
                    completed_at=failed_at,
                )
            )
            await session.commit()
