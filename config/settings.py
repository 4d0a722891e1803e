"""
Centralized configuration using pydantic-settings.

How it works:
- Reads environment variables automatically (e.g., MAX_UPLOAD_BYTES env var → Settings.MAX_UPLOAD_BYTES)
- Falls back to defaults defined here if env vars are not set
- Can also read from a .env file in the project root

Every module imports `settings` from here instead of hardcoding values.
Services that need different limits (tests, mostly) take a Settings
instance in their constructor and default to this singleton.
"""

import os
import socket

from pydantic import Field
from pydantic_settings import BaseSettings


def _default_pool_size() -> int:
    # Roughly half the cores: image encoding saturates a core, and the
    # dispatcher's I/O loop still needs room to breathe.
    return max(1, (os.cpu_count() or 2) // 2)


class Settings(BaseSettings):
    # ── PostgreSQL ──────────────────────────────────────────────
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "mediaingest"
    POSTGRES_PASSWORD: str = "mediaingest"
    POSTGRES_DB: str = "mediaingest"

    # ── Redis ───────────────────────────────────────────────────
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0

    # ── Object store (S3 / R2 / MinIO) ──────────────────────────
    S3_ENDPOINT_URL: str | None = None   # set for R2/MinIO, leave empty for AWS
    S3_REGION: str = "us-east-1"
    S3_ACCESS_KEY_ID: str | None = None
    S3_SECRET_ACCESS_KEY: str | None = None
    S3_BUCKET: str = "media-ingest"
    PUBLIC_BASE_URL: str | None = None   # CDN prefix for published variants
    RAW_PREFIX: str = "raw-uploads"
    PROCESSED_PREFIX: str = "media"

    # ── Upload intent ───────────────────────────────────────────
    MAX_UPLOAD_BYTES: int = 25 * 1024 * 1024
    ALLOWED_MIME_TYPES: list[str] = [
        "image/jpeg",
        "image/png",
        "image/webp",
        "image/gif",
    ]
    MAX_FILENAME_LENGTH: int = 255
    UPLOAD_URL_TTL: int = 300              # seconds the presigned PUT stays valid
    TICKET_FINALIZE_WINDOW: int = 86400    # seconds after expiry a ticket may still be finalized

    # ── Finalize ────────────────────────────────────────────────
    MAX_TITLE_LENGTH: int = 255
    MAX_TAGS: int = 20
    MAX_TAG_LENGTH: int = 50
    MAX_LOCATION_LENGTH: int = 255
    MAX_CAMERA_MODEL_LENGTH: int = 100
    PROCESSING_TIME_HINT: int = 30         # seconds, reported to the client only

    # ── Worker ──────────────────────────────────────────────────
    WORKER_POOL_SIZE: int = Field(default_factory=_default_pool_size)
    WORKER_POOL_KIND: str = "process"      # "process" or "thread"
    WORKER_NAME: str = Field(default_factory=socket.gethostname)
    MAX_INFLIGHT_JOBS: int = 0             # 0 → twice the pool size
    DOWNLOAD_TIMEOUT: float = 60.0
    TRANSFORM_TIMEOUT: float = 120.0
    METADATA_TIMEOUT: float = 30.0
    QUEUE_BLOCK_TIMEOUT: float = 1.0

    # ── Transform ───────────────────────────────────────────────
    ANIMATED_VIDEO_THRESHOLD_BYTES: int = 2 * 1024 * 1024
    MAX_IMAGE_PIXELS: int = 100_000_000

    # ── Metadata ────────────────────────────────────────────────
    DOMINANT_COLOR_COUNT: int = 3

    # ── Notifications ───────────────────────────────────────────
    NOTIFY_MAX_ATTEMPTS: int = 3
    NOTIFY_BACKOFF_BASE: float = 0.5       # exponential backoff base (seconds)

    # ── Cache ───────────────────────────────────────────────────
    CATEGORY_CACHE_SIZE: int = 256
    CATEGORY_CACHE_TTL: float = 300.0
    MEDIA_LIST_CACHE_TTL: int = 60

    # ── App ─────────────────────────────────────────────────────
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000
    LOG_LEVEL: str = "INFO"

    @property
    def database_url(self) -> str:
        """Async connection string (uses asyncpg driver)."""
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def redis_url(self) -> str:
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    @property
    def max_inflight_jobs(self) -> int:
        return self.MAX_INFLIGHT_JOBS or self.WORKER_POOL_SIZE * 2

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


# Singleton, import this everywhere
settings = Settings()
