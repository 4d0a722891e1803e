"""
Shared enumerations used across the entire project.

Using Python enums (inheriting from str) means:
- They serialize to JSON automatically ("queued", not "JobStatus.QUEUED")
- They work as SQLAlchemy column values
- They work as FastAPI query parameters
"""

import enum


class JobStatus(str, enum.Enum):
    QUEUED = "queued"            # accepted by finalize, waiting on the broker
    PROCESSING = "processing"    # claimed by exactly one dispatcher
    COMPLETED = "completed"      # MediaRecord published
    FAILED = "failed"            # terminal failure, see error_kind


class MediaKind(str, enum.Enum):
    IMAGE = "image"
    VIDEO = "video"              # real videos and reclassified large animations


class SizeTier(str, enum.Enum):
    THUMBNAIL = "thumbnail"
    SMALL = "small"
    REGULAR = "regular"
    ORIGINAL = "original"


class Encoding(str, enum.Enum):
    LEGACY = "legacy"            # JPEG (or the source container on the video path)
    MODERN = "modern"            # WebP


class ModerationStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"


class NotificationType(str, enum.Enum):
    UPLOAD_COMPLETED = "upload_completed"
    UPLOAD_FAILED = "upload_failed"
