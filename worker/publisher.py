"""
Media publisher — the last step of a successful job.

Publication is all-or-nothing from a reader's point of view: a
MediaRecord appears only after every one of its variants is stored.

    ┌──────────────────────────┐
    │ 1. upload all variants   │── any upload fails ──▶ delete the ones written,
    │    (concurrently)        │                        TransientInfraError
    └────────────┬─────────────┘
                 ▼
    ┌──────────────────────────┐
    │ 2. INSERT media_record   │── commit fails ──▶ delete all variants,
    │    UPDATE job=completed  │                    ERROR log, PersistenceError
    │    (one transaction)     │
    └────────────┬─────────────┘
                 ▼  committed: nothing below can undo it
    ┌──────────────────────────┐
    │ 3. delete raw object     │  best effort
    │ 4. invalidate media:list │  best effort
    │ 5. upload_completed      │  fire-and-forget
    └──────────────────────────┘

The raw object is removed only once the record is durable, so a failure
anywhere before step 3 leaves the original upload intact.
"""

import asyncio
import logging
import time
import uuid
from datetime import datetime, timezone

from sqlalchemy import update

from cache.invalidation import MEDIA_LIST_PREFIX, CacheInvalidator
from config.settings import Settings, settings as default_settings
from models.enums import JobStatus, MediaKind, ModerationStatus, NotificationType
from models.errors import PersistenceError, TransientInfraError
from models.job import ProcessingJob
from models.media import MediaRecord
from processing.transform import EncodedVariant, TransformResult
from storage.keys import variant_key
from storage.object_store import ObjectStore
from worker.notifier import Notifier, OutgoingNotification

logger = logging.getLogger(__name__)


class MediaPublisher:

    def __init__(
        self,
        session_factory,
        object_store: ObjectStore,
        invalidator: CacheInvalidator,
        notifier: Notifier,
        config: Settings | None = None,
    ):
        self._session_factory = session_factory
        self._store = object_store
        self._invalidator = invalidator
        self._notifier = notifier
        self._settings = config or default_settings

    async def publish(
        self,
        job: ProcessingJob,
        result: TransformResult,
        metadata: dict,
        timings: dict | None = None,
    ) -> MediaRecord:
        timings = timings if timings is not None else {}

        # ── Step 1: variants ────────────────────────────────────
        started = time.monotonic()
        stored = await self._upload_variants(job, result.variants)
        timings["upload"] = time.monotonic() - started

        # ── Step 2: record + job state ──────────────────────────
        started = time.monotonic()
        record = self._build_record(job, result, metadata, stored)
        try:
            async with self._session_factory() as session:
                session.add(record)
                await session.execute(
                    update(ProcessingJob)
                    .where(ProcessingJob.id == job.id)
                    .values(
                        status=JobStatus.COMPLETED.value,
                        media_id=record.id,
                        completed_at=datetime.now(timezone.utc),
                    )
                )
                await session.commit()
        except Exception as e:
            keys = [v["key"] for v in stored]
            logger.error(
                f"Persisting media for job {job.id} [{job.ticket_id}] failed: {e}. "
                f"Removing written variants for manual reconciliation: {keys}"
            )
            await self._delete_quietly(keys)
            raise PersistenceError(f"Could not record media for {job.ticket_id}") from e
        timings["db"] = time.monotonic() - started

        # ── Step 3-5: post-commit, best effort ──────────────────
        await self._delete_raw(job)
        await self._invalidate_listings()
        self._notifier.notify(OutgoingNotification(
            recipient_id=job.uploader_id,
            type=NotificationType.UPLOAD_COMPLETED,
            media_id=record.id,
            payload={
                "ticket_id": job.ticket_id,
                "job_id": str(job.id),
                "media_id": str(record.id),
                "title": record.title,
                "moderation_status": record.moderation_status,
                "is_video": record.is_video,
            },
        ))
        return record

    # ── Variant storage ─────────────────────────────────────────

    async def _upload_variants(self, job: ProcessingJob, variants: list[EncodedVariant]) -> list[dict]:
        public_id = job.ticket_id
        keyed = [
            (variant, variant_key(
                public_id, variant.size_tier.value, variant.extension,
                prefix=self._settings.PROCESSED_PREFIX,
            ))
            for variant in variants
        ]
        outcomes = await asyncio.gather(
            *(
                asyncio.to_thread(self._store.put_bytes, key, variant.data, variant.content_type)
                for variant, key in keyed
            ),
            return_exceptions=True,
        )

        written = [key for (_, key), outcome in zip(keyed, outcomes) if not isinstance(outcome, BaseException)]
        errors = [outcome for outcome in outcomes if isinstance(outcome, BaseException)]
        if errors:
            logger.warning(
                f"{len(errors)}/{len(keyed)} variant uploads failed for job {job.id}; "
                f"rolling back {len(written)} written variants"
            )
            await self._delete_quietly(written)
            raise TransientInfraError(f"Variant upload failed: {errors[0]}") from errors[0]

        return [
            {
                "size_tier": variant.size_tier.value,
                "encoding": variant.encoding.value,
                "url": url,
                "key": key,
                "content_type": variant.content_type,
                "width": variant.width,
                "height": variant.height,
                "bytes": len(variant.data),
            }
            for (variant, key), url in zip(keyed, outcomes)
        ]

    async def _delete_quietly(self, keys: list[str]) -> None:
        results = await asyncio.gather(
            *(asyncio.to_thread(self._store.delete, key) for key in keys),
            return_exceptions=True,
        )
        for key, outcome in zip(keys, results):
            if isinstance(outcome, BaseException):
                logger.warning(f"Could not delete {key}: {outcome}")

    # ── Record assembly ─────────────────────────────────────────

    def _build_record(
        self,
        job: ProcessingJob,
        result: TransformResult,
        metadata: dict,
        stored: list[dict],
    ) -> MediaRecord:
        exif = metadata.get("exif") or None
        camera_model = (exif or {}).get("model") or job.camera_model
        approved = job.is_privileged
        now = datetime.now(timezone.utc)

        return MediaRecord(
            id=uuid.uuid4(),
            job_id=job.id,
            ticket_id=job.ticket_id,
            public_id=job.ticket_id,
            variants=stored,
            dominant_colors=metadata.get("dominant_colors", []),
            exif=exif,
            is_video=result.kind == MediaKind.VIDEO,
            title=job.title_text,
            category_id=job.category_id,
            uploader_id=job.uploader_id,
            location=job.location_text,
            latitude=job.latitude,
            longitude=job.longitude,
            camera_model=camera_model[: self._settings.MAX_CAMERA_MODEL_LENGTH] if camera_model else None,
            tags=list(job.tags or []),
            moderation_status=(
                ModerationStatus.APPROVED.value if approved else ModerationStatus.PENDING.value
            ),
            moderated_at=now if approved else None,
            moderated_by=job.uploader_id if approved else None,
        )

    # ── Post-commit cleanup ─────────────────────────────────────

    async def _delete_raw(self, job: ProcessingJob) -> None:
        try:
            await asyncio.to_thread(self._store.delete, job.raw_object_key)
        except Exception as e:
            logger.warning(f"Could not delete raw object {job.raw_object_key}: {e}")

    async def _invalidate_listings(self) -> None:
        try:
            await self._invalidator.invalidate_prefix(MEDIA_LIST_PREFIX)
        except Exception as e:
            logger.warning(f"Could not invalidate cached media listings: {e}")
