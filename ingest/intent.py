"""
Upload intent service — first step of every upload.

The client announces what it wants to upload; we check it, mint a ticket
and hand back a presigned PUT URL for exactly one raw-object key. The
bytes then go straight from the client to object storage — they never
pass through this service.

    client ──intent──▶ this service ──presign──▶ object store
    client ──PUT bytes──────────────────────────▶ object store
    client ──finalize──▶ finalize gateway

Ticket ids look like image-1718000000123-9f2c4e1a:
- the millisecond timestamp makes them traceable in logs and storage
- 4 random bytes (8 hex chars) from `secrets` make them unguessable
"""

import logging
import secrets
import threading
import time
from datetime import datetime, timedelta, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from api.schemas.upload import IntentRequest, IntentResponse
from config.settings import Settings, settings as default_settings
from ingest.caller import Caller, require_caller
from models.errors import InvalidInput, PayloadTooLarge, UnsupportedMediaType
from models.ticket import UploadTicket
from processing.classify import EXTENSION_TO_MIME
from storage.keys import extension_of, raw_object_key
from storage.object_store import ObjectStore

logger = logging.getLogger(__name__)


class UploadIntentService:

    def __init__(self, object_store: ObjectStore, config: Settings | None = None):
        self._store = object_store
        self._settings = config or default_settings
        self._last_timestamp = 0
        self._timestamp_lock = threading.Lock()

    async def create_intent(
        self,
        session: AsyncSession,
        request: IntentRequest,
        caller: Caller | None,
    ) -> IntentResponse:
        caller = require_caller(caller)
        name = self._validate_file_name(request.file_name)
        size = self._validate_size(request.file_size)
        mime_type, extension = self._validate_type(name, request.file_type)

        ticket_id = self._new_ticket_id()
        key = raw_object_key(ticket_id, extension, prefix=self._settings.RAW_PREFIX)
        ttl = self._settings.UPLOAD_URL_TTL

        # Raises UpstreamUnavailable if signing fails
        upload_url = self._store.presign_put(key, mime_type, ttl)

        session.add(UploadTicket(
            ticket_id=ticket_id,
            raw_object_key=key,
            issued_to=caller.user_id,
            mime_type=mime_type,
            declared_size=size,
            expires_at=datetime.now(timezone.utc) + timedelta(seconds=ttl),
        ))
        await session.commit()

        logger.info(f"Issued ticket {ticket_id} to {caller.user_id} ({mime_type}, {size} bytes)")
        return IntentResponse(
            ticket_id=ticket_id,
            raw_object_key=key,
            upload_url=upload_url,
            expires_in=ttl,
            max_file_size=self._settings.MAX_UPLOAD_BYTES,
        )

    # ── Validation ──────────────────────────────────────────────

    def _validate_file_name(self, file_name: str | None) -> str:
        name = (file_name or "").strip()
        if not name:
            raise InvalidInput("fileName is required")
        if len(name) > self._settings.MAX_FILENAME_LENGTH:
            raise InvalidInput(
                f"fileName must be at most {self._settings.MAX_FILENAME_LENGTH} characters"
            )
        return name

    def _validate_size(self, file_size: int | None) -> int:
        if file_size is None or file_size <= 0:
            raise InvalidInput("fileSize must be a positive number of bytes")
        if file_size > self._settings.MAX_UPLOAD_BYTES:
            limit_mb = self._settings.MAX_UPLOAD_BYTES / (1024 * 1024)
            raise PayloadTooLarge(f"File too large, the limit is {limit_mb:.0f}MB")
        return file_size

    def _validate_type(self, file_name: str, file_type: str | None) -> tuple[str, str]:
        """
        Both the declared content type and the extension must agree on an
        allowed type. A .png declared as image/jpeg is rejected, as is an
        allowed content type on a file with no recognizable extension.
        """
        declared = (file_type or "").strip().lower()
        if declared not in self._settings.ALLOWED_MIME_TYPES:
            raise UnsupportedMediaType(f"Unsupported file type: {declared or 'none'}")

        extension = extension_of(file_name)
        if EXTENSION_TO_MIME.get(extension) != declared:
            raise UnsupportedMediaType(
                f"File extension '.{extension or ''}' does not match {declared}"
            )
        return declared, extension

    def _new_ticket_id(self) -> str:
        with self._timestamp_lock:
            now_ms = time.time_ns() // 1_000_000
            # Never hand out the same or an earlier timestamp twice
            self._last_timestamp = max(now_ms, self._last_timestamp + 1)
            timestamp = self._last_timestamp
        return f"image-{timestamp}-{secrets.token_hex(4)}"
