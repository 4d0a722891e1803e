"""
Dispatcher — pulls jobs off the broker and drives each one to a terminal state.

Architecture:
    ┌──────────────────────────────────────────────────────────────┐
    │                        Dispatcher                             │
    │                                                              │
    │  run() loop                                                  │
    │  ┌─────────────────────┐                                     │
    │  │ wait for a free slot│ ← semaphore(MAX_INFLIGHT_JOBS)      │
    │  │ BLMOVE from Redis   │ ← blocks up to 1s, zero polling     │
    │  └──────────┬──────────┘                                     │
    │             │ create_task(process(delivery))                 │
    │             ▼                                                │
    │  per job (sequential):                                       │
    │    claim ─▶ download ─▶ classify ─▶ transform ──┐            │
    │                                   └▶ metadata ──┴▶ publish   │
    │                                                    │         │
    │                                  failure ─▶ FailureHandler   │
    │                                                    ▼         │
    │                                                   ack        │
    └──────────────────────────────────────────────────────────────┘

Backpressure:
The loop reserves a delivery only after acquiring a slot, so at most
MAX_INFLIGHT_JOBS jobs are held by this process. Everything else stays in
Redis where another dispatcher can take it. Reserved jobs wait for a
transform slot inside TransformPool.

Exactly-one-owner:
A delivery lives in exactly one processing list, and the claim below is a
conditional UPDATE (queued → processing). A redelivered job that some
other dispatcher already claimed, or that already finished, matches zero
rows and is simply acked.

Crash recovery:
On start-up recover() moves this consumer's un-acked deliveries back to
the ready list and resets those jobs from processing to queued, so they
can be claimed again.
"""

import asyncio
import logging
import time
import uuid
from datetime import datetime, timezone

from sqlalchemy import select, update

from broker.queue import Delivery, JobQueue
from config.settings import Settings, settings as default_settings
from models.enums import JobStatus, MediaKind
from models.errors import IngestError, ProcessingTimeout, TransformError
from models.job import ProcessingJob
from processing.base import AbstractExtractor
from processing.classify import classify_media, detect_mime_type
from processing.transform import TransformResult, transform_media
from storage.object_store import ObjectStore
from worker.failures import FailureHandler
from worker.pool import TransformPool
from worker.publisher import MediaPublisher

logger = logging.getLogger(__name__)

_IDLE_POLL_INTERVAL = 0.05


class Dispatcher:

    def __init__(
        self,
        session_factory,
        queue: JobQueue,
        object_store: ObjectStore,
        pool: TransformPool,
        extractors: list[AbstractExtractor],
        publisher: MediaPublisher,
        failure_handler: FailureHandler,
        config: Settings | None = None,
    ):
        self._session_factory = session_factory
        self._queue = queue
        self._store = object_store
        self._pool = pool
        self._extractors = extractors
        self._publisher = publisher
        self._failures = failure_handler
        self._settings = config or default_settings
        self._slots = asyncio.Semaphore(self._settings.max_inflight_jobs)
        self._tasks: set[asyncio.Task] = set()

    # ── Loop ────────────────────────────────────────────────────

    async def run(self, stop: asyncio.Event) -> None:
        await self.recover()
        logger.info(
            f"Dispatcher running (pool={self._pool.size}, "
            f"max in-flight={self._settings.max_inflight_jobs})"
        )
        while not stop.is_set():
            await self._slots.acquire()
            try:
                delivery = await self._queue.reserve(timeout=self._settings.QUEUE_BLOCK_TIMEOUT)
            except Exception as e:
                self._slots.release()
                logger.error(f"Reserve failed: {e}", exc_info=True)
                await asyncio.sleep(max(self._settings.QUEUE_BLOCK_TIMEOUT, _IDLE_POLL_INTERVAL))
                continue

            if delivery is None:
                self._slots.release()
                if self._settings.QUEUE_BLOCK_TIMEOUT <= 0:
                    # Non-blocking reserve: don't spin on an empty queue
                    await asyncio.sleep(_IDLE_POLL_INTERVAL)
                continue

            task = asyncio.create_task(self._run_delivery(delivery))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

        await self.wait_idle()
        logger.info("Dispatcher stopped")

    async def wait_idle(self) -> None:
        """Wait for every job this dispatcher has in flight."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _run_delivery(self, delivery: Delivery) -> None:
        try:
            await self.process(delivery)
        except Exception as e:
            # Left un-acked on purpose: recover() hands it out again
            logger.error(f"Delivery {delivery.job_id} aborted: {e}", exc_info=True)
        finally:
            self._slots.release()

    async def recover(self) -> list[str]:
        job_ids = await self._queue.recover()
        ids = [self._parse_id(job_id) for job_id in job_ids]
        ids = [i for i in ids if i is not None]
        if ids:
            async with self._session_factory() as session:
                await session.execute(
                    update(ProcessingJob)
                    .where(
                        ProcessingJob.id.in_(ids),
                        ProcessingJob.status == JobStatus.PROCESSING.value,
                    )
                    .values(status=JobStatus.QUEUED.value, started_at=None)
                )
                await session.commit()
            logger.info(f"Re-queued {len(ids)} jobs left over from a previous run")
        return job_ids

    # ── One job ─────────────────────────────────────────────────

    async def process(self, delivery: Delivery) -> None:
        """Handle one delivery and ack it once its outcome is recorded."""
        await self.handle_job(delivery.job_id)
        await self._queue.ack(delivery)

    async def handle_job(self, job_id: str) -> str | None:
        """
        Drive one job to COMPLETED or FAILED.

        Returns the terminal status, or None when the job was not ours to
        run (unknown id, or already claimed/finished elsewhere).
        """
        job = await self._claim(job_id)
        if job is None:
            return None

        timings: dict[str, float] = {}
        started = time.monotonic()
        try:
            await self._execute(job, timings)
        except IngestError as e:
            await self._failures.handle(job, e)
            return JobStatus.FAILED.value
        except Exception as e:
            logger.error(f"Unexpected error in job {job.id}: {e}", exc_info=True)
            await self._failures.handle(job, TransformError(f"Unexpected error: {type(e).__name__}"))
            return JobStatus.FAILED.value

        steps = ", ".join(f"{name}={seconds:.3f}s" for name, seconds in timings.items())
        logger.info(
            f"Job {job.id} [{job.ticket_id}] completed in "
            f"{time.monotonic() - started:.3f}s ({steps})"
        )
        return JobStatus.COMPLETED.value

    async def _execute(self, job: ProcessingJob, timings: dict) -> None:
        # ── Step 1: download ────────────────────────────────────
        step = time.monotonic()
        try:
            obj = await asyncio.wait_for(
                asyncio.to_thread(
                    self._store.get_bytes, job.raw_object_key, self._settings.MAX_UPLOAD_BYTES
                ),
                timeout=self._settings.DOWNLOAD_TIMEOUT,
            )
        except asyncio.TimeoutError as e:
            raise ProcessingTimeout(f"Download exceeded {self._settings.DOWNLOAD_TIMEOUT}s") from e
        data = obj.data
        timings["download"] = time.monotonic() - step

        # ── Step 2: classify ────────────────────────────────────
        mime_type = detect_mime_type(job.raw_object_key, obj.content_type) or job.mime_type
        kind = await asyncio.to_thread(
            classify_media, data, mime_type, self._settings.ANIMATED_VIDEO_THRESHOLD_BYTES
        )
        if kind == MediaKind.VIDEO and mime_type.startswith("image/"):
            logger.info(f"Job {job.id}: {len(data)} byte animation reclassified as video")

        # ── Step 3: transform ∥ metadata ────────────────────────
        step = time.monotonic()
        transform = self._pool.run(
            transform_media, data, mime_type, kind, self._settings.MAX_IMAGE_PIXELS,
            timeout=self._settings.TRANSFORM_TIMEOUT,
        )
        if kind == MediaKind.VIDEO:
            result: TransformResult = await transform
            metadata: dict = {}
        else:
            result, metadata = await asyncio.gather(transform, self._extract_metadata(job, data, timings))
        timings["transform"] = time.monotonic() - step

        # ── Step 4: publish ─────────────────────────────────────
        await self._publisher.publish(job, result, metadata, timings)

    async def _extract_metadata(self, job: ProcessingJob, data: bytes, timings: dict) -> dict:
        """Run every extractor side by side; a failing one contributes nothing."""
        started = time.monotonic()

        async def run_one(extractor: AbstractExtractor) -> dict:
            try:
                return await asyncio.wait_for(
                    asyncio.to_thread(extractor.run, data),
                    timeout=self._settings.METADATA_TIMEOUT,
                )
            except Exception as e:
                logger.warning(f"Extractor '{extractor.name}' failed for job {job.id}: {e!r}")
                return {}

        merged: dict = {}
        for fields in await asyncio.gather(*(run_one(e) for e in self._extractors)):
            merged.update(fields)
        timings["metadata"] = time.monotonic() - started
        return merged

    async def _claim(self, job_id: str) -> ProcessingJob | None:
        uid = self._parse_id(job_id)
        if uid is None:
            logger.warning(f"Dropping delivery with invalid job id: {job_id!r}")
            return None

        async with self._session_factory() as session:
            result = await session.execute(
                update(ProcessingJob)
                .where(
                    ProcessingJob.id == uid,
                    ProcessingJob.status == JobStatus.QUEUED.value,
                )
                .values(
                    status=JobStatus.PROCESSING.value,
                    attempt=ProcessingJob.attempt + 1,
                    started_at=datetime.now(timezone.utc),
                )
            )
            await session.commit()
            if result.rowcount != 1:
                logger.info(f"Job {job_id} not claimable (missing or already taken), skipping")
                return None
            job = (await session.execute(
                select(ProcessingJob).where(ProcessingJob.id == uid)
            )).scalar_one()
        return job

    @staticmethod
    def _parse_id(job_id: str) -> uuid.UUID | None:
        try:
            return uuid.UUID(str(job_id))
        except ValueError:
            return None
