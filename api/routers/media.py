"""
Published media listing.

GET /media  → approved MediaRecords, newest first, paginated

Pages are cached in Redis for MEDIA_LIST_CACHE_TTL seconds under
media:list:<page>:<page_size>. The publisher drops every media:list key
when a new record is committed, so a fresh upload shows up on the next
request instead of after the TTL.

Records still pending moderation are never listed here.
"""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_cache, get_db
from api.schemas.media import MediaOut, MediaPage
from cache.invalidation import MEDIA_LIST_PREFIX, CacheInvalidator
from config.settings import settings
from models.enums import ModerationStatus
from models.media import MediaRecord

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/media", tags=["media"])


@router.get("", response_model=MediaPage)
async def list_media(
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(20, ge=1, le=100, alias="pageSize", description="Records per page"),
    db: AsyncSession = Depends(get_db),
    cache: CacheInvalidator = Depends(get_cache),
):
    cache_key = f"{MEDIA_LIST_PREFIX}:{page}:{page_size}"
    cached = await cache.get_json(cache_key)
    if cached is not None:
        return cached

    query = (
        select(MediaRecord)
        .where(MediaRecord.moderation_status == ModerationStatus.APPROVED.value)
        .order_by(MediaRecord.created_at.desc(), MediaRecord.id)
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    records = (await db.execute(query)).scalars().all()

    body = MediaPage(
        items=[MediaOut.model_validate(r) for r in records],
        page=page,
        page_size=page_size,
    ).model_dump(mode="json", by_alias=True)

    await cache.set_json(cache_key, body, ttl=settings.MEDIA_LIST_CACHE_TTL)
    return body
