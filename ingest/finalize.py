"""
Finalize gateway — turns an uploaded raw object into a queued ProcessingJob.

The client calls this once its PUT to the presigned URL has finished. The
gateway answers immediately: either a synchronous rejection (4xx/503) or
202 Accepted with a job id. Everything heavy happens later in the
dispatcher, which reports back only through notifications.

Check order matters; cheap checks run first:
1. caller present
2. ticket id present and well-formed (no I/O yet)
3. ticket exists, belongs to the caller, matches the raw-object key
4. a job already exists for the ticket → same answer as the first time
5. ticket still inside its finalize window
6. user fields normalized, category resolved
7. raw object actually present in storage and within the size limit
8. job inserted + ticket consumed in ONE transaction
9. job id pushed to the broker

Duplicate calls for the same ticket are harmless. Step 4 catches the
sequential case; the UNIQUE constraint on processing_jobs.ticket_id
catches two calls racing through step 8 at the same time.
"""

import asyncio
import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from api.schemas.upload import AcceptedResponse, FinalizeRequest
from broker.queue import JobQueue
from config.settings import Settings, settings as default_settings
from ingest.caller import Caller, require_caller
from ingest.categories import CategoryResolver
from ingest.parsing import normalize_optional_text, normalize_tags, normalize_title
from models.enums import JobStatus
from models.errors import (
    AuthorizationError,
    MissingTicket,
    TicketInvalidFormat,
    ValidationError,
)
from models.job import ProcessingJob
from models.ticket import UploadTicket
from storage.keys import TICKET_PATTERN
from storage.object_store import ObjectNotFound, ObjectStore

logger = logging.getLogger(__name__)

ACCEPTED_MESSAGE = "Upload accepted for processing"


class FinalizeGateway:

    def __init__(
        self,
        object_store: ObjectStore,
        queue: JobQueue,
        categories: CategoryResolver,
        config: Settings | None = None,
    ):
        self._store = object_store
        self._queue = queue
        self._categories = categories
        self._settings = config or default_settings

    async def finalize(
        self,
        session: AsyncSession,
        request: FinalizeRequest,
        caller: Caller | None,
    ) -> AcceptedResponse:
        caller = require_caller(caller)

        # ── Step 1: ticket shape, before touching any store ─────
        ticket_id = (request.ticket_id or "").strip()
        if not ticket_id:
            raise MissingTicket("ticketId is required")
        if not TICKET_PATTERN.match(ticket_id):
            raise TicketInvalidFormat(f"Malformed ticket id: {ticket_id[:80]}")

        # ── Step 2: ownership ───────────────────────────────────
        ticket = await session.get(UploadTicket, ticket_id)
        if ticket is None:
            raise MissingTicket(f"Unknown ticket {ticket_id}")
        if ticket.issued_to != caller.user_id:
            raise AuthorizationError("Ticket was issued to a different caller")
        if request.raw_object_key is not None and request.raw_object_key != ticket.raw_object_key:
            raise AuthorizationError("rawObjectKey does not belong to this ticket")

        # ── Step 3: idempotent replay ───────────────────────────
        existing = await self._find_job(session, ticket_id)
        if existing is not None:
            return await self._replay(existing)

        if datetime.now(timezone.utc) > ticket.finalize_deadline(self._settings.TICKET_FINALIZE_WINDOW):
            raise AuthorizationError(f"Ticket {ticket_id} has expired")

        # ── Step 4: user-supplied fields ────────────────────────
        title = normalize_title(request.title_text, self._settings)
        tags = normalize_tags(request.tags, self._settings)
        location = normalize_optional_text(
            request.location_text, "locationText", self._settings.MAX_LOCATION_LENGTH
        )
        camera_model = normalize_optional_text(
            request.camera_model, "cameraModel", self._settings.MAX_CAMERA_MODEL_LENGTH
        )
        category = await self._categories.resolve(session, request.category_ref)

        # ── Step 5: the bytes must really be there ──────────────
        await self._check_raw_object(ticket.raw_object_key)

        # ── Step 6: job + ticket consumption, one transaction ───
        job = ProcessingJob(
            ticket_id=ticket_id,
            raw_object_key=ticket.raw_object_key,
            mime_type=ticket.mime_type,
            uploader_id=caller.user_id,
            is_privileged=caller.is_privileged,
            title_text=title,
            category_id=category.id,
            location_text=location,
            latitude=request.coordinates.latitude if request.coordinates else None,
            longitude=request.coordinates.longitude if request.coordinates else None,
            camera_model=camera_model,
            tags=tags,
            status=JobStatus.QUEUED.value,
        )
        ticket.consumed = True
        ticket.consumed_at = datetime.now(timezone.utc)
        session.add(job)
        try:
            await session.commit()
        except IntegrityError:
            await session.rollback()
            winner = await self._find_job(session, ticket_id)
            if winner is None:
                raise
            logger.info(f"Concurrent finalize for {ticket_id}; answering with job {winner.id}")
            return self._accepted(winner)

        # ── Step 7: hand off to the broker ──────────────────────
        # TransientInfraError here leaves a queued job; a retried call
        # lands in the replay branch above and re-offers it.
        await self._queue.enqueue(str(job.id))

        logger.info(
            f"Accepted {ticket_id} as job {job.id} "
            f"(uploader={caller.user_id}, privileged={caller.is_privileged})"
        )
        return self._accepted(job)

    # ── Helpers ─────────────────────────────────────────────────

    async def _find_job(self, session: AsyncSession, ticket_id: str) -> ProcessingJob | None:
        result = await session.execute(
            select(ProcessingJob).where(ProcessingJob.ticket_id == ticket_id)
        )
        return result.scalar_one_or_none()

    async def _replay(self, job: ProcessingJob) -> AcceptedResponse:
        if job.status == JobStatus.QUEUED.value:
            await self._queue.enqueue(str(job.id))
        logger.info(f"Duplicate finalize for {job.ticket_id}; job {job.id} is {job.status}")
        return self._accepted(job)

    async def _check_raw_object(self, key: str) -> None:
        try:
            info = await asyncio.to_thread(self._store.head, key)
        except ObjectNotFound as e:
            raise ValidationError("Uploaded file was not found; upload it before finalizing") from e
        if info.size > self._settings.MAX_UPLOAD_BYTES:
            raise ValidationError(
                f"Uploaded file is {info.size} bytes, above the {self._settings.MAX_UPLOAD_BYTES} byte limit"
            )

    def _accepted(self, job: ProcessingJob) -> AcceptedResponse:
        return AcceptedResponse(
            message=ACCEPTED_MESSAGE,
            processing_time_hint=self._settings.PROCESSING_TIME_HINT,
            ticket_id=job.ticket_id,
            job_id=job.id,
        )
