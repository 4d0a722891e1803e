"""
Job queue — a durable, at-least-once Redis broker.

Layout:

    mediaingest:ready                   ← finalize RPUSHes job ids here
    mediaingest:processing:<consumer>   ← deliveries this dispatcher holds
    mediaingest:dead_letter             ← terminal failures, for humans

Reserving a job is an atomic (B)LMOVE from the ready list into the
consumer's own processing list. The entry stays there until the
dispatcher acks it after recording a terminal state. If the dispatcher
dies in between, the entry is still sitting in its processing list and
recover() puts it back on the ready list when it starts again. That is
the whole at-least-once story: nothing is removed from Redis until the
work it represents is finished.

Because a delivery lives in exactly one list at a time, one job is held
by exactly one dispatcher — no application-level locking involved.
Ordering across jobs is not guaranteed (recovered entries go back to the
front).
"""

import json
import logging
import time
from dataclasses import dataclass

from redis.asyncio import Redis
from redis.exceptions import RedisError

from models.errors import TransientInfraError

logger = logging.getLogger(__name__)


@dataclass
class Delivery:
    job_id: str
    raw: bytes | str     # exact payload, needed for LREM on ack


class JobQueue:

    READY_KEY = "mediaingest:ready"
    PROCESSING_KEY_PREFIX = "mediaingest:processing:"
    DLQ_KEY = "mediaingest:dead_letter"

    def __init__(self, redis_client: Redis, consumer: str = "default"):
        self._redis = redis_client
        self._processing_key = f"{self.PROCESSING_KEY_PREFIX}{consumer}"

    async def enqueue(self, job_id: str) -> None:
        payload = json.dumps({"job_id": job_id, "enqueued_at": time.time()})
        try:
            await self._redis.rpush(self.READY_KEY, payload)
        except RedisError as e:
            raise TransientInfraError(f"Job queue unavailable: {e}") from e
        logger.debug(f"Enqueued job {job_id}")

    async def reserve(self, timeout: float = 1.0) -> Delivery | None:
        """
        Move the next job into this consumer's processing list.

        timeout > 0 blocks up to that many seconds (BLMOVE);
        timeout <= 0 returns immediately (LMOVE).
        """
        if timeout > 0:
            raw = await self._redis.blmove(
                self.READY_KEY, self._processing_key, timeout, "LEFT", "RIGHT"
            )
        else:
            raw = await self._redis.lmove(
                self.READY_KEY, self._processing_key, "LEFT", "RIGHT"
            )
        if raw is None:
            return None
        return Delivery(job_id=json.loads(raw)["job_id"], raw=raw)

    async def ack(self, delivery: Delivery) -> None:
        await self._redis.lrem(self._processing_key, 1, delivery.raw)

    async def recover(self) -> list[str]:
        """Push every un-acked delivery of this consumer back onto the ready list."""
        recovered = []
        while (raw := await self._redis.lmove(
            self._processing_key, self.READY_KEY, "RIGHT", "LEFT"
        )) is not None:
            recovered.append(json.loads(raw)["job_id"])
        if recovered:
            logger.warning(f"Recovered {len(recovered)} un-acked deliveries")
        return recovered

    async def depth(self) -> int:
        return await self._redis.llen(self.READY_KEY)

    async def in_flight(self) -> int:
        return await self._redis.llen(self._processing_key)

    async def dead_letter(self, entry: dict) -> None:
        await self._redis.rpush(self.DLQ_KEY, json.dumps(entry))

    async def dead_letters(self) -> list[dict]:
        raw_entries = await self._redis.lrange(self.DLQ_KEY, 0, -1)
        return [json.loads(entry) for entry in raw_entries]
