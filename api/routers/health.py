"""
Health check endpoint.

Checks the two stores the API cannot work without: Postgres (tickets,
jobs) and Redis (job queue, read cache). The object store is not probed
here; a storage outage surfaces as 503 on the upload endpoints instead.

Load balancers and orchestrators use this to decide whether an instance
should receive traffic.
"""

from fastapi import APIRouter, Depends
from redis.asyncio import Redis
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_db, get_redis
from broker.queue import JobQueue

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(
    db: AsyncSession = Depends(get_db),
    redis: Redis = Depends(get_redis),
) -> dict:
    """Check that Postgres and Redis are reachable."""
    await db.execute(text("SELECT 1"))
    await redis.ping()
    queued = await JobQueue(redis).depth()

    return {"status": "healthy", "postgres": "ok", "redis": "ok", "queue_depth": queued}
