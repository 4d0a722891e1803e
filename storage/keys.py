"""
Object key layout.

Raw uploads and processed variants are both derived from the ticket id,
so every object belonging to one upload can be found (and cleaned up)
from the ticket alone.
"""

import re

from config.settings import settings

TICKET_PATTERN = re.compile(r"^image-\d+-[0-9a-f]{8}$")


def raw_object_key(ticket_id: str, extension: str, prefix: str | None = None) -> str:
    return f"{prefix or settings.RAW_PREFIX}/{ticket_id}.{extension}"


def variant_key(public_id: str, size_tier: str, extension: str, prefix: str | None = None) -> str:
    return f"{prefix or settings.PROCESSED_PREFIX}/{public_id}-{size_tier}.{extension}"


def extension_of(key_or_name: str) -> str | None:
    if "." not in key_or_name:
        return None
    ext = key_or_name.rsplit(".", 1)[1].lower()
    return ext or None
