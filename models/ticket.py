"""
UploadTicket ORM model — maps to the "upload_tickets" table.

A ticket binds one caller to one raw-object key for a limited time.
It is minted by the upload intent service and consumed exactly once by
the finalize gateway.
"""

from datetime import datetime, timedelta, timezone

from sqlalchemy import BigInteger, Boolean, DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class UploadTicket(Base):
    __tablename__ = "upload_tickets"

    ticket_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    raw_object_key: Mapped[str] = mapped_column(String(512), unique=True, nullable=False)
    issued_to: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    mime_type: Mapped[str] = mapped_column(String(100), nullable=False)
    declared_size: Mapped[int] = mapped_column(BigInteger, nullable=False)

    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    consumed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    consumed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    def finalize_deadline(self, window_seconds: int) -> datetime:
        return as_utc(self.expires_at) + timedelta(seconds=window_seconds)

    def __repr__(self) -> str:
        return f"<UploadTicket {self.ticket_id} consumed={self.consumed}>"
