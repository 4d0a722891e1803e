"""
FastAPI application factory.

This file:
1. Creates the FastAPI app
2. Runs startup logic (create DB tables, connect to Redis, build the
   object store client and the long-lived ingest services)
3. Registers all routers (uploads, media, health) and error handlers
4. Runs shutdown logic (close connections)

The `lifespan` context manager is FastAPI's way of handling startup/shutdown.
It replaces the older @app.on_event("startup") pattern.

To run:  uvicorn api.main:app --host 0.0.0.0 --port 8000 --reload
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from redis.asyncio import Redis as AsyncRedis

from api.errors import register_error_handlers
from api.routers import health, media, uploads
from cache.ttl import BoundedTTLCache
from config.settings import settings
from ingest.categories import CategoryResolver
from ingest.intent import UploadIntentService
from models.base import async_engine
from models.tables import create_tables
from storage.object_store import ObjectStore

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Runs on startup (before yield) and shutdown (after yield).

    Startup:
    - Creates all DB tables if they don't exist (safe to run multiple times)
    - Connects to Redis
    - Builds the object store client, category resolver and intent service

    Shutdown:
    - Closes Redis connection
    - Disposes the DB engine (closes connection pool)
    """
    # ── Startup ─────────────────────────────────────────────────
    logger.info("Creating database tables...")
    await create_tables(async_engine)

    app.state.redis = AsyncRedis.from_url(settings.redis_url)
    app.state.object_store = ObjectStore(settings)
    app.state.category_resolver = CategoryResolver(
        BoundedTTLCache(maxsize=settings.CATEGORY_CACHE_SIZE, ttl=settings.CATEGORY_CACHE_TTL)
    )
    app.state.intent_service = UploadIntentService(app.state.object_store, settings)
    logger.info(f"API ready — bucket: {settings.S3_BUCKET}")

    yield  # app is running and serving requests between startup and shutdown

    # ── Shutdown ────────────────────────────────────────────────
    await app.state.redis.aclose()
    await async_engine.dispose()
    logger.info("API shut down")


def create_app() -> FastAPI:
    """Factory function that builds and configures the FastAPI application."""
    app = FastAPI(
        title="Media Ingest",
        description="Asynchronous media ingestion: presigned uploads, queued transforms, published variants",
        version="1.0.0",
        lifespan=lifespan,
    )

    register_error_handlers(app)

    # Each router adds its endpoints to the app
    app.include_router(health.router)
    app.include_router(uploads.router)
    app.include_router(media.router)

    return app


# This is what uvicorn imports: `uvicorn api.main:app`
app = create_app()
