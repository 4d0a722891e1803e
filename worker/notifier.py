"""
Notifier — fire-and-forget delivery of upload outcomes.

The dispatcher calls notify() and moves on immediately. Delivery runs as
a background asyncio task with its own retry loop:

    attempt 1 ──fail──▶ sleep 0.5s ──▶ attempt 2 ──fail──▶ sleep 1s ──▶ attempt 3
                                                                 │
                                                        give up, log WARNING

Nothing a sink does can reach the pipeline: exceptions stay inside the
task, and a publication that already committed stays committed.

The sink is anything with `async def send(notification: OutgoingNotification)`.
DatabaseNotificationSink writes rows to the notifications table; actually
delivering them to the user is another service's job.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field

from config.settings import Settings, settings as default_settings
from models.enums import NotificationType
from models.notification import Notification

logger = logging.getLogger(__name__)


@dataclass
class OutgoingNotification:
    recipient_id: str
    type: NotificationType
    media_id: uuid.UUID | None = None
    payload: dict = field(default_factory=dict)


class DatabaseNotificationSink:

    def __init__(self, session_factory):
        self._session_factory = session_factory

    async def send(self, notification: OutgoingNotification) -> None:
        async with self._session_factory() as session:
            session.add(Notification(
                recipient_id=notification.recipient_id,
                type=notification.type.value,
                media_id=notification.media_id,
                payload=notification.payload,
            ))
            await session.commit()


class Notifier:

    def __init__(self, sink, config: Settings | None = None):
        config = config or default_settings
        self._sink = sink
        self._max_attempts = max(1, config.NOTIFY_MAX_ATTEMPTS)
        self._backoff_base = config.NOTIFY_BACKOFF_BASE
        self._pending: set[asyncio.Task] = set()

    def notify(self, notification: OutgoingNotification) -> None:
        """Schedule delivery and return immediately."""
        task = asyncio.create_task(self._deliver(notification))
        # Keep a strong reference until done, or the task may be GC'd mid-flight
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for every in-flight delivery. Called at shutdown and by tests."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _deliver(self, notification: OutgoingNotification) -> bool:
        for attempt in range(1, self._max_attempts + 1):
            try:
                await self._sink.send(notification)
                logger.debug(
                    f"Delivered {notification.type.value} to {notification.recipient_id}"
                )
                return True
            except Exception as e:
                if attempt == self._max_attempts:
                    logger.warning(
                        f"Giving up on {notification.type.value} for "
                        f"{notification.recipient_id} after {attempt} attempts: {e}"
                    )
                    return False
                delay = self._backoff_base * (2 ** (attempt - 1))
                logger.info(
                    f"Notification attempt {attempt} failed ({e}); retrying in {delay:.1f}s"
                )
                await asyncio.sleep(delay)
        return False
