"""
Shared test fixtures.

These replace real infrastructure with lightweight in-memory alternatives:
- PostgreSQL → SQLite file in tmp_path (via aiosqlite), so the API session
  and the dispatcher's own sessions see the same data
- Redis → fakeredis (pure Python Redis mock)
- S3 → InMemoryObjectStore (dict of key → bytes, with fault injection)
- HTTP server → httpx.AsyncClient with ASGI transport (no network)
- Transform processes → a thread pool (WORKER_POOL_KIND="thread")

This means tests:
- Run without Docker
- Run fast (no network)
- Are fully isolated (each test gets a fresh database)
"""

import io
import threading

import pytest
import pytest_asyncio
from fakeredis.aioredis import FakeRedis
from httpx import ASGITransport, AsyncClient
from PIL import Image
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from api.dependencies import (
    get_category_resolver,
    get_db,
    get_intent_service,
    get_object_store,
    get_redis,
)
from api.main import create_app
from broker.queue import JobQueue
from cache.invalidation import CacheInvalidator
from cache.ttl import BoundedTTLCache
from config.settings import Settings
from ingest.categories import CategoryResolver
from ingest.intent import UploadIntentService
from models.base import Base
from models.category import Category
from models.enums import JobStatus
from models.job import ProcessingJob
from models.errors import TransientInfraError, UpstreamUnavailable
from processing.registry import create_extractors
from storage.object_store import DownloadedObject, ObjectInfo, ObjectNotFound
from worker.dispatcher import Dispatcher
from worker.failures import FailureHandler
from worker.notifier import Notifier
from worker.pool import TransformPool
from worker.publisher import MediaPublisher


# ── Object store double ─────────────────────────────────────────

class InMemoryObjectStore:
    """
    Same surface as storage.object_store.ObjectStore, backed by a dict.

    Fault injection:
    - fail_presign: presign_put raises UpstreamUnavailable
    - fail_head: head raises TransientInfraError
    - fail_put: predicate(key) → True makes put_bytes raise
    - fail_delete: delete raises TransientInfraError
    """

    def __init__(self):
        self.objects: dict[str, tuple[bytes, str | None]] = {}
        self.fail_presign = False
        self.fail_head = False
        self.fail_put = None
        self.fail_delete = False
        self._lock = threading.Lock()

    def presign_put(self, key: str, content_type: str, expires_in: int) -> str:
        if self.fail_presign:
            raise UpstreamUnavailable("Could not sign upload URL")
        return f"https://uploads.test/{key}?content-type={content_type}&expires={expires_in}"

    def head(self, key: str) -> ObjectInfo:
        if self.fail_head:
            raise TransientInfraError("Object store unavailable")
        with self._lock:
            if key not in self.objects:
                raise ObjectNotFound(f"Object {key} not found")
            data, content_type = self.objects[key]
        return ObjectInfo(key=key, size=len(data), content_type=content_type)

    def get_bytes(self, key: str, max_bytes: int | None = None) -> DownloadedObject:
        with self._lock:
            if key not in self.objects:
                raise ObjectNotFound(f"Object {key} not found")
            data, content_type = self.objects[key]
        return DownloadedObject(key=key, data=data, content_type=content_type)

    def put_bytes(self, key: str, data: bytes, content_type: str) -> str:
        if self.fail_put is not None and self.fail_put(key):
            raise TransientInfraError(f"Failed to upload {key}")
        with self._lock:
            self.objects[key] = (data, content_type)
        return self.public_url(key)

    def delete(self, key: str) -> None:
        if self.fail_delete:
            raise TransientInfraError(f"Failed to delete {key}")
        with self._lock:
            self.objects.pop(key, None)

    def public_url(self, key: str) -> str:
        return f"https://cdn.test/{key}"

    def keys(self, prefix: str = "") -> list[str]:
        with self._lock:
            return sorted(k for k in self.objects if k.startswith(prefix))


class RecordingSink:
    """Notification sink that keeps everything in a list."""

    def __init__(self, failures: int = 0):
        self.sent = []
        self.attempts = 0
        self._failures = failures

    async def send(self, notification) -> None:
        self.attempts += 1
        if self.attempts <= self._failures:
            raise ConnectionError("sink unavailable")
        self.sent.append(notification)


# ── Settings ────────────────────────────────────────────────────

@pytest.fixture
def test_settings():
    return Settings(
        WORKER_POOL_KIND="thread",
        WORKER_POOL_SIZE=2,
        MAX_INFLIGHT_JOBS=4,
        QUEUE_BLOCK_TIMEOUT=0,
        NOTIFY_BACKOFF_BASE=0.0,
        DOWNLOAD_TIMEOUT=10,
        TRANSFORM_TIMEOUT=30,
        METADATA_TIMEOUT=10,
    )


# ── Database / Redis ────────────────────────────────────────────

@pytest_asyncio.fixture
async def async_engine(tmp_path):
    """Create a fresh database file for each test."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(async_engine):
    return async_sessionmaker(async_engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def async_session(session_factory):
    """Create a database session bound to the test engine."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def fake_redis():
    """Create a fake Redis instance (in-memory, no real Redis needed)."""
    r = FakeRedis()
    yield r
    await r.flushall()


@pytest_asyncio.fixture
async def category(session_factory):
    """An active 'Landscape' category."""
    async with session_factory() as session:
        landscape = Category(name="Landscape")
        session.add(landscape)
        await session.commit()
    return landscape


# ── Collaborators ───────────────────────────────────────────────

@pytest.fixture
def object_store():
    return InMemoryObjectStore()


@pytest.fixture
def category_resolver():
    return CategoryResolver(BoundedTTLCache(maxsize=16, ttl=60))


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def notifier(sink, test_settings):
    return Notifier(sink, test_settings)


@pytest.fixture
def queue(fake_redis):
    return JobQueue(fake_redis, consumer="test-worker")


@pytest.fixture
def transform_pool(test_settings):
    pool = TransformPool(test_settings)
    yield pool
    pool.shutdown()


@pytest.fixture
def dispatcher(session_factory, queue, object_store, transform_pool, fake_redis, notifier, test_settings):
    """A fully wired dispatcher over the in-memory doubles."""
    return Dispatcher(
        session_factory=session_factory,
        queue=queue,
        object_store=object_store,
        pool=transform_pool,
        extractors=create_extractors(test_settings),
        publisher=MediaPublisher(
            session_factory, object_store, CacheInvalidator(fake_redis), notifier, test_settings
        ),
        failure_handler=FailureHandler(session_factory, queue, notifier),
        config=test_settings,
    )


@pytest_asyncio.fixture
async def client(async_session, fake_redis, object_store, category_resolver):
    """
    Create a test HTTP client that talks directly to the FastAPI app.

    dependency_overrides tells FastAPI: "instead of using the real get_db,
    get_redis and object store, use these test versions." ASGITransport
    means requests go directly to the app in-process, no HTTP server or
    network involved.
    """
    app = create_app()
    intent_service = UploadIntentService(object_store)

    async def override_get_db():
        yield async_session

    async def override_get_redis():
        return fake_redis

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis
    app.dependency_overrides[get_object_store] = lambda: object_store
    app.dependency_overrides[get_category_resolver] = lambda: category_resolver
    app.dependency_overrides[get_intent_service] = lambda: intent_service

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.fixture
def job_factory(session_factory, object_store, category):
    """
    await job_factory(data, ext="jpg", ...) → a QUEUED ProcessingJob whose
    raw object is already in the store, as if finalize had just run.
    """
    counter = iter(range(1, 10_000))

    async def _make(data, ext="jpg", mime_type="image/jpeg", uploader_id="user-1",
                    is_privileged=False, camera_model=None, title="Test upload"):
        n = next(counter)
        ticket_id = f"image-{1718000000000 + n}-{n:08x}"
        raw_key = f"raw-uploads/{ticket_id}.{ext}"
        object_store.put_bytes(raw_key, data, mime_type)
        async with session_factory() as session:
            job = ProcessingJob(
                ticket_id=ticket_id,
                raw_object_key=raw_key,
                mime_type=mime_type,
                uploader_id=uploader_id,
                is_privileged=is_privileged,
                title_text=title,
                category_id=category.id,
                camera_model=camera_model,
                tags=["test"],
                status=JobStatus.QUEUED.value,
            )
            session.add(job)
            await session.commit()
        return job

    return _make


# ── Media helpers ───────────────────────────────────────────────

@pytest.fixture
def make_jpeg():
    """make_jpeg(width, height, color=(r, g, b), make=None, model=None) → bytes"""

    def _make(width=1600, height=1200, color=(200, 30, 30), make=None, model=None, orientation=None):
        img = Image.new("RGB", (width, height), color=color)
        exif = Image.Exif()
        if make:
            exif[0x010F] = make
        if model:
            exif[0x0110] = model
        if orientation:
            exif[0x0112] = orientation
        buffer = io.BytesIO()
        img.save(buffer, "JPEG", quality=90, exif=exif)
        return buffer.getvalue()

    return _make


@pytest.fixture
def make_gif():
    """make_gif(frames, size) → bytes of an animated (frames > 1) GIF."""

    def _make(frames=3, size=(64, 48)):
        images = [
            Image.new("RGB", size, color=(40 * i % 256, 80, 160)) for i in range(frames)
        ]
        buffer = io.BytesIO()
        images[0].save(
            buffer, "GIF", save_all=frames > 1, append_images=images[1:], duration=100, loop=0
        )
        return buffer.getvalue()

    return _make
