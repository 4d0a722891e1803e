"""
Content classification — decides which path a raw upload takes.

    video/*                                   → VIDEO
    animated GIF/WebP larger than threshold   → VIDEO  (reclassified)
    everything else                           → IMAGE

Large animations are deliberately treated as video: re-encoding every
frame into four tiers and two formats costs far more bandwidth and
storage than serving the original container once.

The threshold is exclusive: a file of exactly `threshold` bytes stays on
the image path.
"""

import io
import logging

from PIL import Image, UnidentifiedImageError

from models.enums import MediaKind
from storage.keys import extension_of

logger = logging.getLogger(__name__)

EXTENSION_TO_MIME = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "webp": "image/webp",
    "gif": "image/gif",
    "mp4": "video/mp4",
    "webm": "video/webm",
}

MIME_TO_EXTENSION = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/gif": "gif",
    "video/mp4": "mp4",
    "video/webm": "webm",
}

ANIMATABLE_MIME_TYPES = {"image/gif", "image/webp"}


def detect_mime_type(key: str, content_type: str | None) -> str | None:
    """
    Extension first, stored Content-Type second.

    The extension was fixed by the intent service when it minted the key,
    while Content-Type is whatever the client sent with its PUT.
    """
    ext = extension_of(key)
    if ext in EXTENSION_TO_MIME:
        return EXTENSION_TO_MIME[ext]
    return content_type


def is_animated(data: bytes) -> bool:
    try:
        with Image.open(io.BytesIO(data)) as img:
            return bool(getattr(img, "is_animated", False))
    except (UnidentifiedImageError, OSError, ValueError) as e:
        # The transform step reports corrupt input properly
        logger.debug(f"Could not probe animation: {e}")
        return False


def classify_media(data: bytes, mime_type: str | None, animated_threshold: int) -> MediaKind:
    if mime_type and mime_type.startswith("video/"):
        return MediaKind.VIDEO
    if (
        mime_type in ANIMATABLE_MIME_TYPES
        and len(data) > animated_threshold
        and is_animated(data)
    ):
        return MediaKind.VIDEO
    return MediaKind.IMAGE
