"""
FastAPI dependency injection.

How this works:
- An endpoint declares `db: AsyncSession = Depends(get_db)`
- FastAPI calls get_db() before your endpoint runs, creating a DB session
- Your endpoint receives the session and uses it
- After the endpoint returns (or raises), the session is automatically closed

Long-lived collaborators (Redis client, object store, category resolver,
intent service) are built once in the app lifespan and parked on
app.state; the dependencies below just hand them out. Cheap wrappers
(JobQueue, CacheInvalidator, FinalizeGateway) are assembled per request
from those pieces, so overriding get_redis or get_object_store in tests
reaches everything built on top of them.
"""

from typing import AsyncGenerator

from fastapi import Depends, Header, Request
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from broker.queue import JobQueue
from cache.invalidation import CacheInvalidator
from ingest.caller import Caller, caller_from_headers
from ingest.categories import CategoryResolver
from ingest.finalize import FinalizeGateway
from ingest.intent import UploadIntentService
from models.base import AsyncSessionLocal
from storage.object_store import ObjectStore


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yields an async database session, auto-closes when the request ends."""
    async with AsyncSessionLocal() as session:
        yield session


async def get_redis(request: Request) -> Redis:
    """Returns the Redis client stored on the app during startup."""
    return request.app.state.redis


async def get_object_store(request: Request) -> ObjectStore:
    return request.app.state.object_store


async def get_category_resolver(request: Request) -> CategoryResolver:
    return request.app.state.category_resolver


async def get_intent_service(request: Request) -> UploadIntentService:
    # One instance per app: ticket timestamps are monotonic per instance
    return request.app.state.intent_service


async def get_caller(
    x_caller_id: str | None = Header(default=None),
    x_caller_role: str | None = Header(default=None),
) -> Caller | None:
    """Identity forwarded by the upstream auth gateway; None when absent."""
    return caller_from_headers(x_caller_id, x_caller_role)


async def get_queue(redis: Redis = Depends(get_redis)) -> JobQueue:
    return JobQueue(redis)


async def get_cache(redis: Redis = Depends(get_redis)) -> CacheInvalidator:
    return CacheInvalidator(redis)


async def get_finalize_gateway(
    object_store: ObjectStore = Depends(get_object_store),
    queue: JobQueue = Depends(get_queue),
    categories: CategoryResolver = Depends(get_category_resolver),
) -> FinalizeGateway:
    return FinalizeGateway(object_store, queue, categories)
