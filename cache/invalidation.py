"""
Read-cache store and invalidate-by-key hook, backed by Redis.

Readers (GET /media) cache serialized responses under namespaced keys:

    mediaingest:cache:media:list:<page>:<page_size>

Writers (the publisher) call invalidate_prefix("media:list") after a new
record is committed, which drops every cached page at once. Keys are
matched with SCAN, never KEYS, so invalidation does not stall Redis.
"""

import json
import logging

from redis.asyncio import Redis

logger = logging.getLogger(__name__)

MEDIA_LIST_PREFIX = "media:list"


class CacheInvalidator:

    NAMESPACE = "mediaingest:cache:"

    def __init__(self, redis_client: Redis):
        self._redis = redis_client

    def _key(self, key: str) -> str:
        return f"{self.NAMESPACE}{key}"

    async def get_json(self, key: str):
        raw = await self._redis.get(self._key(key))
        return json.loads(raw) if raw is not None else None

    async def set_json(self, key: str, value, ttl: int) -> None:
        await self._redis.set(self._key(key), json.dumps(value), ex=ttl)

    async def invalidate(self, *keys: str) -> int:
        if not keys:
            return 0
        return await self._redis.delete(*(self._key(k) for k in keys))

    async def invalidate_prefix(self, prefix: str) -> int:
        removed = 0
        async for key in self._redis.scan_iter(match=f"{self._key(prefix)}*"):
            removed += await self._redis.delete(key)
        if removed:
            logger.debug(f"Invalidated {removed} cache entries under '{prefix}'")
        return removed
