"""Unit tests for UploadPipeline ordering, failure handling, retries and orientation."""

from __future__ import annotations

import asyncio
import io
import threading
from typing import List

import pytest
from PIL import Image

from frame_logger.core.retry_policy import RetryPolicy
from frame_logger.debugger.config import DebuggerConfig
from frame_logger.debugger.errors import EncodeFailure, MetadataWriteFailure, UploadFailure
from frame_logger.debugger.imaging import EXIF_ORIENTATION_TAG, Orientation, OrientedFrame
from frame_logger.debugger.pipeline import UploadPipeline
from frame_logger.debugger.records import ID_FIELD, LINK_FIELD, LogEntry, Session
from frame_logger.debugger.session import LogSession
from tests.infrastructure.helpers.generators import bgr_frame
from tests.infrastructure.mocks.collaborator_mocks import (
    START_TIME,
    FlakyBlobStore,
    RecordingDocumentFeed,
)

IMAGES = "sessions/s1/images"


def fake_encoder(image, *, quality, fix_orientation):
    if image is None:
        raise ValueError("no pixels")
    return b"\xff\xd8\xff" + str(image).encode()


def entry(entry_id: int, image="pixels") -> LogEntry:
    return LogEntry(entry_id=entry_id, capture_time=START_TIME + entry_id, message=f"frame {entry_id}", image=image)


@pytest.fixture
def session():
    return Session(session_id="s1", start_time=START_TIME)


@pytest.fixture
def feed():
    return RecordingDocumentFeed()


def image_writes(feed: RecordingDocumentFeed) -> List[str]:
    return [doc_id for collection, doc_id, _ in feed.writes if collection == IMAGES]


class TestOrdering:

    @pytest.mark.asyncio
    async def test_entries_leave_in_enqueue_order(self, session, feed):
        store = FlakyBlobStore(delay=0.002)
        pipeline = UploadPipeline(session, store, feed, encoder=fake_encoder)
        await pipeline.start()

        for i in range(6):
            pipeline.enqueue(entry(i))
        await pipeline.join()
        await pipeline.stop()

        assert store.put_order == [f"s1/{i}.jpeg" for i in range(6)]
        assert image_writes(feed) == [str(i) for i in range(6)]
        assert pipeline.metrics()["uploaded"] == 6

    @pytest.mark.asyncio
    async def test_one_entry_in_flight_at_a_time(self, session, feed):
        in_flight = 0
        peak = 0

        class TrackingStore(FlakyBlobStore):
            async def put(self, key, data):
                nonlocal in_flight, peak
                in_flight += 1
                peak = max(peak, in_flight)
                try:
                    await asyncio.sleep(0.001)
                    return await super().put(key, data)
                finally:
                    in_flight -= 1

        pipeline = UploadPipeline(session, TrackingStore(), feed, encoder=fake_encoder)
        await pipeline.start()
        for i in range(5):
            pipeline.enqueue(entry(i))
        await pipeline.stop(drain=True)

        assert peak == 1

    @pytest.mark.asyncio
    async def test_enqueue_from_other_threads(self, session, feed):
        store = FlakyBlobStore()
        pipeline = UploadPipeline(session, store, feed, encoder=fake_encoder)
        await pipeline.start()

        def produce():
            for i in range(3):
                pipeline.enqueue(entry(i))

        worker = threading.Thread(target=produce)
        worker.start()
        await asyncio.to_thread(worker.join)
        await pipeline.join()
        await pipeline.stop()

        assert store.put_order == ["s1/0.jpeg", "s1/1.jpeg", "s1/2.jpeg"]

    @pytest.mark.asyncio
    async def test_metadata_record_fields(self, session, feed, blob_store):
        pipeline = UploadPipeline(session, blob_store, feed, encoder=fake_encoder)
        await pipeline.start()
        pipeline.enqueue(entry(3))
        await pipeline.stop()

        document = feed.document(IMAGES, "3")
        assert document.get(ID_FIELD) == 3
        assert document.get(LINK_FIELD) == "memory://frame-logger/s1/3.jpeg"

    @pytest.mark.asyncio
    async def test_image_released_after_encoding(self, session, feed, blob_store):
        pipeline = UploadPipeline(session, blob_store, feed, encoder=fake_encoder)
        item = entry(0)
        await pipeline.start()
        pipeline.enqueue(item)
        await pipeline.stop()

        assert item.image is None
        assert item.link is not None


class TestFailures:

    @pytest.mark.asyncio
    async def test_upload_failure_is_dropped_and_reported(self, session, feed):
        store = FlakyBlobStore(fail_keys={"s1/5.jpeg"})
        failures = []
        pipeline = UploadPipeline(
            session, store, feed, encoder=fake_encoder,
            on_failure=lambda item, error: failures.append((item.entry_id, error)),
        )
        await pipeline.start()
        for i in (5, 6, 7):
            pipeline.enqueue(entry(i))
        await pipeline.stop()

        assert image_writes(feed) == ["6", "7"]
        assert [entry_id for entry_id, _ in failures] == [5]
        error = failures[0][1]
        assert isinstance(error, UploadFailure)
        assert isinstance(error.cause, ConnectionError)
        assert error.stage == "upload"

    @pytest.mark.asyncio
    async def test_encode_failure(self, session, feed, blob_store):
        failures = []
        pipeline = UploadPipeline(
            session, blob_store, feed,
            on_failure=lambda item, error: failures.append(error),
        )
        await pipeline.start()
        pipeline.enqueue(entry(0, image=object()))
        pipeline.enqueue(entry(1, image=bgr_frame()))
        await pipeline.stop()

        assert isinstance(failures[0], EncodeFailure)
        assert blob_store.keys() == ["s1/1.jpeg"]
        assert pipeline.metrics()["dropped_encode"] == 1

    @pytest.mark.asyncio
    async def test_download_url_failure_counts_as_upload(self, session, feed):
        store = FlakyBlobStore(fail_url_keys={"s1/0.jpeg"})
        pipeline = UploadPipeline(session, store, feed, encoder=fake_encoder)
        await pipeline.start()
        pipeline.enqueue(entry(0))
        pipeline.enqueue(entry(1))
        await pipeline.stop()

        assert image_writes(feed) == ["1"]
        assert pipeline.metrics()["dropped_upload"] == 1

    @pytest.mark.asyncio
    async def test_metadata_failure(self, session, blob_store):
        feed = RecordingDocumentFeed(fail_documents={"0"})
        failures = []
        pipeline = UploadPipeline(
            session, blob_store, feed, encoder=fake_encoder,
            on_failure=lambda item, error: failures.append(error),
        )
        await pipeline.start()
        pipeline.enqueue(entry(0))
        pipeline.enqueue(entry(1))
        await pipeline.stop()

        # The blob stays behind; only the record is missing.
        assert blob_store.keys() == ["s1/0.jpeg", "s1/1.jpeg"]
        assert isinstance(failures[0], MetadataWriteFailure)
        assert image_writes(feed) == ["1"]

    @pytest.mark.asyncio
    async def test_raising_failure_callback_does_not_stop_worker(self, session, feed):
        store = FlakyBlobStore(fail_keys={"s1/0.jpeg"})

        def explode(item, error):
            raise RuntimeError("callback bug")

        pipeline = UploadPipeline(session, store, feed, encoder=fake_encoder, on_failure=explode)
        await pipeline.start()
        pipeline.enqueue(entry(0))
        pipeline.enqueue(entry(1))
        await pipeline.stop()

        assert image_writes(feed) == ["1"]

    def test_enqueue_when_not_running(self, session, feed, blob_store):
        pipeline = UploadPipeline(session, blob_store, feed, encoder=fake_encoder)

        pipeline.enqueue(entry(0))

        assert pipeline.metrics()["dropped_not_running"] == 1
        assert pipeline.metrics()["queued"] == 0

    @pytest.mark.asyncio
    async def test_join_returns_after_cancelled_stop(self, session, feed):
        store = FlakyBlobStore(delay=0.5)
        pipeline = UploadPipeline(session, store, feed, encoder=fake_encoder)
        await pipeline.start()
        for i in range(3):
            pipeline.enqueue(entry(i))
        await asyncio.sleep(0.01)

        await pipeline.stop(drain=False)
        await asyncio.wait_for(pipeline.join(), 1.0)

        assert image_writes(feed) == []
        assert not pipeline.running

    @pytest.mark.asyncio
    async def test_enqueue_after_stop_dropped_on_loop(self, session, feed, blob_store):
        pipeline = UploadPipeline(session, blob_store, feed, encoder=fake_encoder)
        await pipeline.start()
        await pipeline.stop()

        pipeline.enqueue(entry(0))
        await asyncio.sleep(0)

        assert pipeline.metrics()["dropped_not_running"] == 1
        assert pipeline.metrics()["queued"] == 0

    @pytest.mark.asyncio
    async def test_thread_drop_counted_on_loop_thread(self, session, feed, blob_store):
        pipeline = UploadPipeline(session, blob_store, feed, encoder=fake_encoder)
        await pipeline.start()
        await pipeline.stop()

        producer = threading.Thread(target=pipeline.enqueue, args=(entry(0),))
        producer.start()
        producer.join()
        assert pipeline.metrics()["dropped_not_running"] == 0

        await asyncio.sleep(0)
        assert pipeline.metrics()["dropped_not_running"] == 1


class TestRetries:

    @pytest.mark.asyncio
    async def test_no_retry_by_default(self, session, feed):
        store = FlakyBlobStore(fail_keys={"s1/0.jpeg"}, fail_times=1)
        pipeline = UploadPipeline(session, store, feed, encoder=fake_encoder)
        await pipeline.start()
        pipeline.enqueue(entry(0))
        await pipeline.stop()

        assert store.attempts["s1/0.jpeg"] == 1
        assert image_writes(feed) == []

    @pytest.mark.asyncio
    async def test_retry_policy_recovers_transient_failure(self, session, feed):
        store = FlakyBlobStore(fail_keys={"s1/0.jpeg"}, fail_times=1)
        policy = RetryPolicy(max_attempts=2, base_delay=0.0, jitter=0.0)
        pipeline = UploadPipeline(session, store, feed, encoder=fake_encoder, retry_policy=policy)
        await pipeline.start()
        pipeline.enqueue(entry(0))
        await pipeline.stop()

        assert store.attempts["s1/0.jpeg"] == 2
        assert image_writes(feed) == ["0"]

    @pytest.mark.asyncio
    async def test_operation_timeout(self, session, feed):
        store = FlakyBlobStore(delay=0.5)
        failures = []
        pipeline = UploadPipeline(
            session, store, feed, encoder=fake_encoder,
            operation_timeout=0.01,
            on_failure=lambda item, error: failures.append(error),
        )
        await pipeline.start()
        pipeline.enqueue(entry(0))
        await pipeline.stop()

        assert isinstance(failures[0], UploadFailure)
        assert isinstance(failures[0].cause, asyncio.TimeoutError)


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_stop_without_drain_cancels_worker(self, session, feed):
        store = FlakyBlobStore(delay=0.2)
        pipeline = UploadPipeline(session, store, feed, encoder=fake_encoder)
        await pipeline.start()
        pipeline.enqueue(entry(0))
        await asyncio.sleep(0.01)

        await pipeline.stop(drain=False)

        assert not pipeline.running
        assert image_writes(feed) == []

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self, session, feed, blob_store):
        pipeline = UploadPipeline(session, blob_store, feed, encoder=fake_encoder)
        await pipeline.start()
        await pipeline.start()

        assert pipeline.running
        assert pipeline.collection == IMAGES
        await pipeline.stop()


class TestOrientation:

    @pytest.mark.asyncio
    async def test_fix_orientation_from_config_reaches_encoder(self, blob_store, feed):
        config = DebuggerConfig(fix_orientation=True)
        log_session = LogSession(blob_store, feed, config=config, session=Session("s1", START_TIME))

        async with log_session:
            log_session.submit(OrientedFrame(bgr_frame(8, 4), Orientation.RIGHT), "rotated")
            await log_session.flush()

        with Image.open(io.BytesIO(blob_store.read("s1/0.jpeg"))) as stored:
            assert stored.size == (4, 8)
            assert stored.getexif().get(EXIF_ORIENTATION_TAG, 1) == 1

    @pytest.mark.asyncio
    async def test_orientation_kept_as_exif_by_default(self, blob_store, feed):
        log_session = LogSession(blob_store, feed, session=Session("s1", START_TIME))

        async with log_session:
            log_session.submit(OrientedFrame(bgr_frame(8, 4), Orientation.RIGHT), "rotated")
            await log_session.flush()

        with Image.open(io.BytesIO(blob_store.read("s1/0.jpeg"))) as stored:
            assert stored.size == (8, 4)
            assert stored.getexif().get(EXIF_ORIENTATION_TAG) == 6
