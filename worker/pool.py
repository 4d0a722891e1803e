"""
Transform pool — the fixed-size pool that runs CPU-bound transforms.

Architecture:
    ┌─────────────────────────────────────────────────────────┐
    │                    TransformPool                         │
    │                                                         │
    │  event loop (dispatcher)                                │
    │     │  await pool.run(transform_media, ...)             │
    │     ▼                                                   │
    │  ┌──────────────────────────────────────────┐           │
    │  │ ProcessPoolExecutor (N processes)         │           │
    │  │  ┌────────┐ ┌────────┐ ┌────────┐        │           │
    │  │  │Proc 1  │ │Proc 2  │ │(idle)  │        │           │
    │  │  │resize  │ │encode  │ │        │        │           │
    │  │  └────────┘ └────────┘ └────────┘        │           │
    │  └──────────────────────────────────────────┘           │
    └─────────────────────────────────────────────────────────┘

Decoding and re-encoding images holds the GIL for long stretches, so the
default is a process pool: a transform in one process never stalls the
event loop or the other transforms. WORKER_POOL_KIND=thread swaps in a
ThreadPoolExecutor (used by the test suite and handy on small hosts).

The pool is the one shared mutable resource of the worker process, and
run() is the only way in. Callers never see the executor itself.

Crash isolation:
If a worker process dies (segfault in a codec, OOM kill) the executor
becomes permanently broken and every pending future fails with
BrokenProcessPool. run() turns that into a TransformError for the job
that was running, throws the broken executor away and builds a fresh one,
so the next job gets a healthy pool.

Timeouts:
run() waits at most `timeout` seconds. A transform still running after
that is reported as ProcessingTimeout; the worker process is not killed
and its slot frees up when the transform finishes on its own.
"""

import asyncio
import logging
from concurrent.futures import Executor, ProcessPoolExecutor, ThreadPoolExecutor
from concurrent.futures.process import BrokenProcessPool

from config.settings import Settings, settings as default_settings
from models.errors import ProcessingTimeout, TransformError

logger = logging.getLogger(__name__)


def default_executor_factory(kind: str, size: int) -> Executor:
    if kind == "thread":
        return ThreadPoolExecutor(max_workers=size, thread_name_prefix="transform")
    return ProcessPoolExecutor(max_workers=size)


class TransformPool:

    def __init__(self, config: Settings | None = None, executor_factory=None):
        self._settings = config or default_settings
        self._size = self._settings.WORKER_POOL_SIZE
        self._kind = self._settings.WORKER_POOL_KIND
        self._factory = executor_factory or default_executor_factory
        self._executor = self._factory(self._kind, self._size)
        self._generation = 0
        self._closed = False

    @property
    def size(self) -> int:
        return self._size

    async def run(self, fn, *args, timeout: float | None = None):
        """
        Run fn(*args) on the pool and return its result.

        fn and args must be picklable when the pool is process-backed, so
        pass top-level functions and plain data (bytes, strings, enums).
        """
        if self._closed:
            raise RuntimeError("TransformPool is shut down")

        loop = asyncio.get_running_loop()
        generation = self._generation
        try:
            # submit() itself raises BrokenProcessPool on a dead executor
            future = loop.run_in_executor(self._executor, fn, *args)
            return await asyncio.wait_for(future, timeout=timeout)
        except asyncio.TimeoutError as e:
            raise ProcessingTimeout(f"Transform exceeded {timeout}s") from e
        except BrokenProcessPool as e:
            logger.error(f"Transform worker crashed: {e}; rebuilding pool")
            self._rebuild(generation)
            raise TransformError("Transform worker crashed") from e

    def _rebuild(self, generation: int) -> None:
        # Several jobs see the same broken executor; only the first rebuilds
        if generation != self._generation or self._closed:
            return
        broken = self._executor
        self._executor = self._factory(self._kind, self._size)
        self._generation += 1
        broken.shutdown(wait=False, cancel_futures=True)
        logger.info(f"Transform pool rebuilt (generation {self._generation})")

    def shutdown(self, wait: bool = True) -> None:
        self._closed = True
        self._executor.shutdown(wait=wait, cancel_futures=not wait)
        logger.info("Transform pool stopped")
