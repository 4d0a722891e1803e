"""
MediaRecord ORM model — the canonical, publicly servable entity.

A row is inserted by the dispatcher only after every variant listed in
`variants` has been written to the processed store, in the same
transaction that marks the job completed. job_id and ticket_id are UNIQUE
so a redelivered job can never publish twice.

variants is a list of dicts:
    {"size_tier": "regular", "encoding": "modern", "url": "...",
     "key": "media/image-...-regular.webp", "content_type": "image/webp",
     "width": 1080, "height": 720, "bytes": 48213}

exif holds only the fields the extractor actually found; it is NULL when
nothing was found, never a dict of placeholders.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, Float, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base, JSON_TYPE
from models.enums import ModerationStatus


class MediaRecord(Base):
    __tablename__ = "media_records"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    job_id: Mapped[uuid.UUID] = mapped_column(Uuid, unique=True, nullable=False)
    ticket_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    public_id: Mapped[str] = mapped_column(String(128), nullable=False)

    # ── Renditions & extracted metadata ─────────────────────────
    variants: Mapped[list] = mapped_column(JSON_TYPE, nullable=False)
    dominant_colors: Mapped[list] = mapped_column(JSON_TYPE, default=list, nullable=False)
    exif: Mapped[dict | None] = mapped_column(JSON_TYPE, nullable=True)
    is_video: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # ── Descriptive fields (copied from the job) ────────────────
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    category_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    uploader_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    camera_model: Mapped[str | None] = mapped_column(String(100), nullable=True)
    tags: Mapped[list] = mapped_column(JSON_TYPE, default=list, nullable=False)

    # ── Moderation (fixed at enqueue time) ──────────────────────
    moderation_status: Mapped[str] = mapped_column(
        String(20), default=ModerationStatus.PENDING.value, nullable=False, index=True
    )
    moderated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    moderated_by: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Set client-side too, so listings can serialize a record without a refresh
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
    )

    def variant(self, size_tier: str, encoding: str) -> dict | None:
        for v in self.variants:
            if v["size_tier"] == size_tier and v["encoding"] == encoding:
                return v
        return None

    def __repr__(self) -> str:
        return f"<MediaRecord {self.id} [{self.ticket_id}] {self.moderation_status}>"
