"""
ProcessingJob ORM model — maps to the "processing_jobs" table.

Key design decisions:
- ticket_id is UNIQUE: the database, not application locking, guarantees
  that two finalize calls for the same ticket produce one job
- is_privileged is a snapshot taken at finalize time; nothing downstream
  looks the caller up again
- tags/coordinates are already normalized by the finalize gateway, so the
  dispatcher never re-parses user input
- attempt counts claims; redelivery after a dispatcher crash bumps it
- error_kind holds the error code of the terminal failure
"""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, Integer, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base, JSON_TYPE
from models.enums import JobStatus


class ProcessingJob(Base):
    __tablename__ = "processing_jobs"

    # ── Identity ────────────────────────────────────────────────
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    ticket_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    raw_object_key: Mapped[str] = mapped_column(String(512), nullable=False)
    mime_type: Mapped[str] = mapped_column(String(100), nullable=False)

    # ── Uploader snapshot ───────────────────────────────────────
    uploader_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    is_privileged: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # ── User-supplied metadata ──────────────────────────────────
    title_text: Mapped[str] = mapped_column(String(255), nullable=False)
    category_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    location_text: Mapped[str | None] = mapped_column(String(255), nullable=True)
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    camera_model: Mapped[str | None] = mapped_column(String(100), nullable=True)
    tags: Mapped[list] = mapped_column(JSON_TYPE, default=list, nullable=False)

    # ── Lifecycle ───────────────────────────────────────────────
    status: Mapped[str] = mapped_column(
        String(20), default=JobStatus.QUEUED.value, nullable=False, index=True
    )
    attempt: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    error_kind: Mapped[str | None] = mapped_column(String(50), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    media_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<ProcessingJob {self.id} [{self.ticket_id}] {self.status}>"
