"""Tests for Notifier retry/backoff and the database sink."""

import pytest
from sqlalchemy import select

from config.settings import Settings
from models.enums import NotificationType
from models.notification import Notification
from worker.notifier import DatabaseNotificationSink, Notifier, OutgoingNotification


class FlakySink:
    def __init__(self, failures):
        self.failures = failures
        self.attempts = 0
        self.sent = []

    async def send(self, notification):
        self.attempts += 1
        if self.attempts <= self.failures:
            raise ConnectionError("try again")
        self.sent.append(notification)


def _note(recipient="user-1"):
    return OutgoingNotification(recipient_id=recipient, type=NotificationType.UPLOAD_COMPLETED)


@pytest.mark.asyncio
async def test_delivery_is_retried_until_it_succeeds():
    sink = FlakySink(failures=2)
    notifier = Notifier(sink, Settings(NOTIFY_MAX_ATTEMPTS=3, NOTIFY_BACKOFF_BASE=0))

    notifier.notify(_note())
    await notifier.drain()

    assert sink.attempts == 3
    assert len(sink.sent) == 1
    assert notifier.pending == 0


@pytest.mark.asyncio
async def test_delivery_gives_up_quietly():
    sink = FlakySink(failures=10)
    notifier = Notifier(sink, Settings(NOTIFY_MAX_ATTEMPTS=2, NOTIFY_BACKOFF_BASE=0))

    notifier.notify(_note())
    await notifier.drain()

    assert sink.attempts == 2
    assert sink.sent == []


@pytest.mark.asyncio
async def test_backoff_grows_exponentially(monkeypatch):
    delays = []

    async def fake_sleep(seconds):
        delays.append(seconds)

    monkeypatch.setattr("worker.notifier.asyncio.sleep", fake_sleep)
    notifier = Notifier(FlakySink(failures=3), Settings(NOTIFY_MAX_ATTEMPTS=4, NOTIFY_BACKOFF_BASE=0.5))

    notifier.notify(_note())
    await notifier.drain()

    assert delays == [0.5, 1.0, 2.0]


@pytest.mark.asyncio
async def test_notify_returns_before_delivery():
    sink = FlakySink(failures=0)
    notifier = Notifier(sink, Settings())

    notifier.notify(_note())
    assert sink.attempts == 0
    assert notifier.pending == 1
    await notifier.drain()
    assert sink.attempts == 1


@pytest.mark.asyncio
async def test_database_sink_writes_rows(session_factory):
    notifier = Notifier(DatabaseNotificationSink(session_factory), Settings())
    notifier.notify(OutgoingNotification(
        recipient_id="user-7",
        type=NotificationType.UPLOAD_FAILED,
        payload={"error": "TransformError"},
    ))
    await notifier.drain()

    async with session_factory() as session:
        [row] = (await session.execute(select(Notification))).scalars().all()
    assert row.recipient_id == "user-7"
    assert row.type == "upload_failed"
    assert row.payload == {"error": "TransformError"}
    assert row.is_read is False
