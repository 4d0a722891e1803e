"""
End-to-end tests for the Dispatcher.

Real transforms run on a thread-backed TransformPool; storage is the
in-memory double, Redis is fakeredis and the database is a SQLite file.
Notifications are collected by RecordingSink (drained before asserting).
"""

import asyncio
import json

import pytest
from sqlalchemy import func, select

from broker.queue import JobQueue
from models.enums import JobStatus, ModerationStatus, NotificationType
from models.job import ProcessingJob
from models.media import MediaRecord


async def _job(session_factory, job_id):
    async with session_factory() as session:
        return await session.get(ProcessingJob, job_id)


async def _records(session_factory):
    async with session_factory() as session:
        return (await session.execute(select(MediaRecord))).scalars().all()


@pytest.mark.asyncio
async def test_image_job_is_published(dispatcher, job_factory, session_factory, object_store, notifier, sink, make_jpeg):
    job = await job_factory(make_jpeg(1600, 1200, color=(20, 60, 220), make="Canon", model="EOS R5"))

    assert await dispatcher.handle_job(str(job.id)) == JobStatus.COMPLETED.value
    await notifier.drain()

    finished = await _job(session_factory, job.id)
    assert finished.status == JobStatus.COMPLETED.value
    assert finished.attempt == 1
    assert finished.completed_at is not None

    [record] = await _records(session_factory)
    assert finished.media_id == record.id
    assert record.public_id == job.ticket_id
    assert record.is_video is False
    assert len(record.variants) == 8
    assert record.dominant_colors[0] == "blue"
    assert record.exif == {"make": "Canon", "model": "EOS R5"}
    assert record.camera_model == "EOS R5"
    assert record.moderation_status == ModerationStatus.PENDING.value

    # Every declared variant exists; the raw upload is gone
    for variant in record.variants:
        assert variant["key"] in object_store.objects
        assert variant["key"].startswith(f"media/{job.ticket_id}-")
    assert job.raw_object_key not in object_store.objects

    assert [n.type for n in sink.sent] == [NotificationType.UPLOAD_COMPLETED]
    assert sink.sent[0].recipient_id == "user-1"
    assert sink.sent[0].media_id == record.id


@pytest.mark.asyncio
async def test_privileged_upload_is_approved(dispatcher, job_factory, session_factory, notifier, make_jpeg):
    job = await job_factory(make_jpeg(400, 300), uploader_id="admin-1", is_privileged=True)
    await dispatcher.handle_job(str(job.id))
    await notifier.drain()

    [record] = await _records(session_factory)
    assert record.moderation_status == ModerationStatus.APPROVED.value
    assert record.moderated_by == "admin-1"
    assert record.moderated_at is not None


@pytest.mark.asyncio
async def test_user_camera_model_is_the_fallback(dispatcher, job_factory, session_factory, notifier, make_jpeg):
    job = await job_factory(make_jpeg(400, 300), camera_model="Pinhole")
    await dispatcher.handle_job(str(job.id))
    await notifier.drain()

    [record] = await _records(session_factory)
    assert record.exif is None
    assert record.camera_model == "Pinhole"


@pytest.mark.asyncio
async def test_corrupt_upload_fails_once(dispatcher, job_factory, session_factory, object_store, fake_redis, notifier, sink):
    """Scenario D: one failure notification, no record, raw object kept."""
    job = await job_factory(b"\xff\xd8\xff definitely not a jpeg")

    assert await dispatcher.handle_job(str(job.id)) == JobStatus.FAILED.value
    await notifier.drain()

    failed = await _job(session_factory, job.id)
    assert failed.status == JobStatus.FAILED.value
    assert failed.error_kind == "TransformError"
    assert failed.completed_at is not None

    assert await _records(session_factory) == []
    assert job.raw_object_key in object_store.objects
    assert object_store.keys("media/") == []

    assert [n.type for n in sink.sent] == [NotificationType.UPLOAD_FAILED]
    assert sink.sent[0].payload["error"] == "TransformError"

    [entry] = await JobQueue(fake_redis).dead_letters()
    assert entry["job_id"] == str(job.id)
    assert entry["ticket_id"] == job.ticket_id
    assert entry["kind"] == "TransformError"
    assert entry["retryable"] is False


@pytest.mark.asyncio
async def test_missing_raw_object_fails(dispatcher, job_factory, session_factory, object_store, notifier, sink, make_jpeg):
    job = await job_factory(make_jpeg(64, 64))
    object_store.delete(job.raw_object_key)

    assert await dispatcher.handle_job(str(job.id)) == JobStatus.FAILED.value
    await notifier.drain()
    assert (await _job(session_factory, job.id)).error_kind == "ObjectNotFound"
    assert [n.type for n in sink.sent] == [NotificationType.UPLOAD_FAILED]


@pytest.mark.asyncio
async def test_large_animation_takes_video_path(dispatcher, job_factory, session_factory, notifier, make_gif, test_settings):
    data = make_gif(frames=4, size=(320, 240))
    test_settings.ANIMATED_VIDEO_THRESHOLD_BYTES = len(data) - 1
    job = await job_factory(data, ext="gif", mime_type="image/gif")

    assert await dispatcher.handle_job(str(job.id)) == JobStatus.COMPLETED.value
    await notifier.drain()

    [record] = await _records(session_factory)
    assert record.is_video is True
    assert record.dominant_colors == []          # extractors skipped on the video path
    original = record.variant("original", "legacy")
    assert original["content_type"] == "image/gif"
    assert original["key"].endswith("-original.gif")


@pytest.mark.asyncio
async def test_job_is_claimed_only_once(dispatcher, job_factory, session_factory, notifier, make_jpeg):
    job = await job_factory(make_jpeg(200, 200))

    first, second = await asyncio.gather(
        dispatcher.handle_job(str(job.id)),
        dispatcher.handle_job(str(job.id)),
    )
    await notifier.drain()

    assert sorted([first, second], key=str) == sorted([JobStatus.COMPLETED.value, None], key=str)
    assert len(await _records(session_factory)) == 1


@pytest.mark.asyncio
async def test_finished_job_is_skipped_on_redelivery(dispatcher, job_factory, session_factory, notifier, sink, make_jpeg):
    job = await job_factory(make_jpeg(200, 200))
    await dispatcher.handle_job(str(job.id))
    assert await dispatcher.handle_job(str(job.id)) is None
    await notifier.drain()
    assert len(sink.sent) == 1


@pytest.mark.asyncio
async def test_unknown_or_invalid_job_ids_are_skipped(dispatcher):
    assert await dispatcher.handle_job("not-a-uuid") is None
    assert await dispatcher.handle_job("00000000-0000-0000-0000-000000000000") is None


@pytest.mark.asyncio
async def test_recover_requeues_own_deliveries(dispatcher, job_factory, session_factory, queue, fake_redis, make_jpeg):
    job = await job_factory(make_jpeg(64, 64))
    await queue.enqueue(str(job.id))
    await queue.reserve(timeout=0)

    # Simulate a crash after the claim but before the outcome
    async with session_factory() as session:
        row = await session.get(ProcessingJob, job.id)
        row.status = JobStatus.PROCESSING.value
        await session.commit()

    assert await dispatcher.recover() == [str(job.id)]
    assert (await _job(session_factory, job.id)).status == JobStatus.QUEUED.value
    assert await queue.depth() == 1
    assert await queue.in_flight() == 0


@pytest.mark.asyncio
async def test_process_acks_after_outcome(dispatcher, job_factory, queue, notifier, make_jpeg):
    job = await job_factory(make_jpeg(64, 64))
    await queue.enqueue(str(job.id))
    delivery = await queue.reserve(timeout=0)

    await dispatcher.process(delivery)
    await notifier.drain()
    assert await queue.in_flight() == 0


@pytest.mark.asyncio
async def test_fifty_concurrent_jobs_do_not_mix_metadata(
    dispatcher, job_factory, session_factory, queue, notifier, sink, make_jpeg
):
    """Scenario E: 50 distinct jobs through the run loop, no cross-contamination."""
    palette = [
        ((220, 20, 20), "red"),
        ((30, 180, 40), "green"),
        ((20, 60, 220), "blue"),
        ((240, 230, 30), "yellow"),
        ((120, 40, 200), "purple"),
    ]
    expected = {}
    for i in range(50):
        rgb, color = palette[i % len(palette)]
        job = await job_factory(make_jpeg(120, 90, color=rgb, make=f"Make-{i}", model=f"Model-{i}"))
        expected[job.ticket_id] = (color, f"Make-{i}", f"Model-{i}")
        await queue.enqueue(str(job.id))

    stop = asyncio.Event()
    runner = asyncio.create_task(dispatcher.run(stop))

    async def all_done():
        while True:
            async with session_factory() as session:
                remaining = (await session.execute(
                    select(func.count()).select_from(ProcessingJob).where(
                        ProcessingJob.status.in_([JobStatus.QUEUED.value, JobStatus.PROCESSING.value])
                    )
                )).scalar_one()
            if remaining == 0:
                return
            await asyncio.sleep(0.05)

    await asyncio.wait_for(all_done(), timeout=120)
    stop.set()
    await asyncio.wait_for(runner, timeout=30)
    await notifier.drain()

    records = await _records(session_factory)
    assert len(records) == 50
    for record in records:
        color, make, model = expected[record.ticket_id]
        assert record.dominant_colors[0] == color
        assert record.exif == {"make": make, "model": model}
        assert record.camera_model == model

    assert await queue.depth() == 0
    assert await queue.in_flight() == 0
    assert len(sink.sent) == 50
    assert {n.payload["ticket_id"] for n in sink.sent} == set(expected)
