"""
Pydantic schemas for GET /media.

from_attributes=True lets these be built straight from MediaRecord ORM
objects (model_validate(record)). The internal storage key of each
variant is not exposed; clients only ever need the URL.
"""

from datetime import datetime
from uuid import UUID

from pydantic import ConfigDict

from api.schemas.upload import CamelModel


class VariantOut(CamelModel):
    size_tier: str
    encoding: str
    url: str
    width: int
    height: int
    content_type: str


class MediaOut(CamelModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    public_id: str
    title: str
    category_id: UUID
    uploader_id: str
    is_video: bool
    variants: list[VariantOut]
    dominant_colors: list[str]
    exif: dict | None = None
    location: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    camera_model: str | None = None
    tags: list[str]
    created_at: datetime


class MediaPage(CamelModel):
    items: list[MediaOut]
    page: int
    page_size: int
