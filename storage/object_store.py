"""
Object store client — thin wrapper around boto3's S3 client.

Works against AWS S3, Cloudflare R2 and MinIO (set S3_ENDPOINT_URL for the
latter two). Every method is synchronous because boto3 is; async callers
wrap them in asyncio.to_thread() so the event loop never blocks on the
network.

Two buckets' worth of keys live side by side:
    raw-uploads/<ticket>.<ext>          ← written by the client via presigned PUT
    media/<ticket>-<tier>.<ext>         ← written by the dispatcher

Errors are translated at this boundary:
- botocore failures (network, credentials, 5xx) → TransientInfraError
- a missing key on get/head → ObjectNotFound
"""

import logging
from dataclasses import dataclass

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from config.settings import Settings, settings as default_settings
from models.errors import TransientInfraError, UpstreamUnavailable, ValidationError

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}
_CHUNK_SIZE = 1024 * 1024


class ObjectNotFound(ValidationError):
    code = "ObjectNotFound"
    status_code = 404


@dataclass
class ObjectInfo:
    key: str
    size: int
    content_type: str | None


@dataclass
class DownloadedObject:
    key: str
    data: bytes
    content_type: str | None


class ObjectStore:

    # Variants are content-addressed by ticket id, so they never change
    IMMUTABLE_CACHE_CONTROL = "public, max-age=31536000, immutable"

    def __init__(self, config: Settings | None = None, client=None):
        self._settings = config or default_settings
        self._bucket = self._settings.S3_BUCKET
        self._client = client or boto3.client(
            "s3",
            endpoint_url=self._settings.S3_ENDPOINT_URL,
            region_name=self._settings.S3_REGION,
            aws_access_key_id=self._settings.S3_ACCESS_KEY_ID,
            aws_secret_access_key=self._settings.S3_SECRET_ACCESS_KEY,
            config=BotoConfig(
                signature_version="s3v4",
                retries={"max_attempts": 3, "mode": "standard"},
            ),
        )

    # ── Presigning ──────────────────────────────────────────────

    def presign_put(self, key: str, content_type: str, expires_in: int) -> str:
        """Presigned PUT URL scoped to exactly one key and content type."""
        try:
            return self._client.generate_presigned_url(
                "put_object",
                Params={"Bucket": self._bucket, "Key": key, "ContentType": content_type},
                ExpiresIn=expires_in,
            )
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Failed to presign upload URL for {key}: {e}")
            raise UpstreamUnavailable("Could not sign upload URL") from e

    # ── Reads ───────────────────────────────────────────────────

    def head(self, key: str) -> ObjectInfo:
        try:
            response = self._client.head_object(Bucket=self._bucket, Key=key)
        except ClientError as e:
            self._raise_translated(e, key)
        except BotoCoreError as e:
            raise TransientInfraError(f"Object store unavailable: {e}") from e
        return ObjectInfo(
            key=key,
            size=int(response.get("ContentLength", 0)),
            content_type=response.get("ContentType"),
        )

    def get_bytes(self, key: str, max_bytes: int | None = None) -> DownloadedObject:
        """
        Stream an object into memory chunk by chunk.

        max_bytes guards against a client that uploaded more than it
        declared: the read stops as soon as the limit is crossed.
        """
        try:
            response = self._client.get_object(Bucket=self._bucket, Key=key)
            chunks = []
            total = 0
            for chunk in response["Body"].iter_chunks(chunk_size=_CHUNK_SIZE):
                total += len(chunk)
                if max_bytes is not None and total > max_bytes:
                    raise ValidationError(
                        f"Object {key} exceeds the {max_bytes} byte upload limit"
                    )
                chunks.append(chunk)
        except ClientError as e:
            self._raise_translated(e, key)
        except BotoCoreError as e:
            raise TransientInfraError(f"Object store unavailable: {e}") from e
        return DownloadedObject(
            key=key,
            data=b"".join(chunks),
            content_type=response.get("ContentType"),
        )

    # ── Writes ──────────────────────────────────────────────────

    def put_bytes(self, key: str, data: bytes, content_type: str) -> str:
        """Upload bytes and return the public URL of the new object."""
        try:
            self._client.put_object(
                Bucket=self._bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
                CacheControl=self.IMMUTABLE_CACHE_CONTROL,
            )
        except (BotoCoreError, ClientError) as e:
            raise TransientInfraError(f"Failed to upload {key}: {e}") from e
        return self.public_url(key)

    def delete(self, key: str) -> None:
        try:
            self._client.delete_object(Bucket=self._bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            raise TransientInfraError(f"Failed to delete {key}: {e}") from e

    def public_url(self, key: str) -> str:
        if self._settings.PUBLIC_BASE_URL:
            return f"{self._settings.PUBLIC_BASE_URL.rstrip('/')}/{key}"
        if self._settings.S3_ENDPOINT_URL:
            return f"{self._settings.S3_ENDPOINT_URL.rstrip('/')}/{self._bucket}/{key}"
        return f"https://{self._bucket}.s3.{self._settings.S3_REGION}.amazonaws.com/{key}"

    def _raise_translated(self, error: ClientError, key: str):
        code = str(error.response.get("Error", {}).get("Code", ""))
        if code in _NOT_FOUND_CODES:
            raise ObjectNotFound(f"Object {key} not found") from error
        raise TransientInfraError(f"Object store error ({code}) for {key}") from error
