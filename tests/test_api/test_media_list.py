"""Tests for GET /media and its Redis read cache."""

import uuid

import pytest

from cache.invalidation import MEDIA_LIST_PREFIX, CacheInvalidator
from models.enums import ModerationStatus
from models.media import MediaRecord


def _record(title, status=ModerationStatus.APPROVED, category_id=None):
    ticket = f"image-{uuid.uuid4().int % 10**13}-{uuid.uuid4().hex[:8]}"
    return MediaRecord(
        job_id=uuid.uuid4(),
        ticket_id=ticket,
        public_id=ticket,
        variants=[{
            "size_tier": "regular", "encoding": "modern", "url": f"https://cdn.test/{ticket}.webp",
            "key": f"media/{ticket}-regular.webp", "content_type": "image/webp",
            "width": 1080, "height": 720, "bytes": 1234,
        }],
        dominant_colors=["blue"],
        title=title,
        category_id=category_id or uuid.uuid4(),
        uploader_id="user-1",
        tags=["sea"],
        moderation_status=status.value,
    )


@pytest.mark.asyncio
async def test_lists_only_approved_records(client, async_session):
    async_session.add_all([
        _record("Approved"),
        _record("Pending", status=ModerationStatus.PENDING),
    ])
    await async_session.commit()

    response = await client.get("/media")
    assert response.status_code == 200
    data = response.json()
    assert [item["title"] for item in data["items"]] == ["Approved"]
    item = data["items"][0]
    assert item["variants"][0]["sizeTier"] == "regular"
    assert "key" not in item["variants"][0]
    assert item["dominantColors"] == ["blue"]


@pytest.mark.asyncio
async def test_pages_are_cached_until_invalidated(client, async_session, fake_redis):
    async_session.add(_record("First"))
    await async_session.commit()

    first = await client.get("/media", params={"page": 1, "pageSize": 10})
    assert len(first.json()["items"]) == 1

    # A new record is invisible while the cached page lives...
    async_session.add(_record("Second"))
    await async_session.commit()
    cached = await client.get("/media", params={"page": 1, "pageSize": 10})
    assert len(cached.json()["items"]) == 1

    # ...and shows up once the publisher's hook drops media:list keys
    await CacheInvalidator(fake_redis).invalidate_prefix(MEDIA_LIST_PREFIX)
    fresh = await client.get("/media", params={"page": 1, "pageSize": 10})
    assert len(fresh.json()["items"]) == 2


@pytest.mark.asyncio
async def test_page_size_is_bounded(client):
    response = await client.get("/media", params={"pageSize": 500})
    assert response.status_code == 422
