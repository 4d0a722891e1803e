"""
Normalization of user-supplied finalize fields.

The request schema already guarantees types (tags is a list of strings,
coordinates has numeric latitude/longitude). These helpers apply the
business limits and normalize values. Anything out of bounds is rejected
with ValidationError — nothing is silently truncated or dropped.
"""

from config.settings import Settings
from models.errors import ValidationError


def normalize_title(title: str | None, config: Settings) -> str:
    trimmed = (title or "").strip()
    if not trimmed:
        raise ValidationError("Title must not be empty")
    if len(trimmed) > config.MAX_TITLE_LENGTH:
        raise ValidationError(f"Title must be at most {config.MAX_TITLE_LENGTH} characters")
    return trimmed


def normalize_optional_text(value: str | None, field_name: str, max_length: int) -> str | None:
    if value is None:
        return None
    trimmed = value.strip()
    if not trimmed:
        return None
    if len(trimmed) > max_length:
        raise ValidationError(f"{field_name} must be at most {max_length} characters")
    return trimmed


def normalize_tags(tags: list[str] | None, config: Settings) -> list[str]:
    """Trim, lower-case and de-duplicate, preserving first occurrence order."""
    if not tags:
        return []
    seen: list[str] = []
    for tag in tags:
        cleaned = tag.strip().lower()
        if not cleaned:
            raise ValidationError("Tags must not be empty")
        if len(cleaned) > config.MAX_TAG_LENGTH:
            raise ValidationError(f"Tag '{cleaned[:20]}…' exceeds {config.MAX_TAG_LENGTH} characters")
        if cleaned not in seen:
            seen.append(cleaned)
    if len(seen) > config.MAX_TAGS:
        raise ValidationError(f"At most {config.MAX_TAGS} tags are allowed")
    return seen
