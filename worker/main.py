"""
Worker process entry point.

This is a SEPARATE process from the FastAPI API server. It wires up:

    JobQueue        — this process's view of the Redis broker
    TransformPool   — N processes doing the CPU-bound resizing/encoding
    Dispatcher      — asyncio loop: reserve → claim → process → ack
    Notifier        — background delivery of upload outcomes

Run as many worker processes as you like: each one gets its own consumer
name (WORKER_NAME, defaults to the host name) and therefore its own
processing list in Redis.

To run:
    python -m worker.main

In Docker:
    command: python -m worker.main

Shutdown:
SIGINT/SIGTERM set the stop event. The dispatcher stops reserving, lets
its in-flight jobs finish, then the pending notifications are drained and
the pool is shut down.
"""

import asyncio
import logging
import signal

from redis.asyncio import Redis

from broker.queue import JobQueue
from cache.invalidation import CacheInvalidator
from config.settings import settings
from models.base import AsyncSessionLocal, async_engine
from models.tables import create_tables
from processing.registry import create_extractors
from storage.object_store import ObjectStore
from worker.dispatcher import Dispatcher
from worker.failures import FailureHandler
from worker.notifier import DatabaseNotificationSink, Notifier
from worker.pool import TransformPool
from worker.publisher import MediaPublisher

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


async def main():
    # Safe to run alongside the API: create_all skips existing tables
    logger.info("Ensuring database tables exist...")
    await create_tables(async_engine)

    redis_client = Redis.from_url(settings.redis_url)
    queue = JobQueue(redis_client, consumer=settings.WORKER_NAME)
    object_store = ObjectStore(settings)
    notifier = Notifier(DatabaseNotificationSink(AsyncSessionLocal), settings)
    pool = TransformPool(settings)

    dispatcher = Dispatcher(
        session_factory=AsyncSessionLocal,
        queue=queue,
        object_store=object_store,
        pool=pool,
        extractors=create_extractors(settings),
        publisher=MediaPublisher(
            AsyncSessionLocal, object_store, CacheInvalidator(redis_client), notifier, settings
        ),
        failure_handler=FailureHandler(AsyncSessionLocal, queue, notifier),
        config=settings,
    )

    # ── Graceful shutdown on Ctrl+C or SIGTERM ──────────────────
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            # Windows event loops have no signal handler support
            signal.signal(sig, lambda signum, frame: loop.call_soon_threadsafe(stop.set))

    logger.info(f"Worker '{settings.WORKER_NAME}' running. Press Ctrl+C to stop.")
    try:
        await dispatcher.run(stop)
    finally:
        logger.info("Shutdown signal received, draining...")
        await notifier.drain()
        pool.shutdown()
        await redis_client.aclose()
        await async_engine.dispose()

    logger.info("Worker process exited")


if __name__ == "__main__":
    asyncio.run(main())
