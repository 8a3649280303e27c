"""Serialized upload pipeline for admitted log entries."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional

from frame_logger.core.asyncio_utils import cancel_and_wait, create_logged_task
from frame_logger.core.logging_utils import LoggerLike, ensure_structured_logger
from frame_logger.core.retry_policy import NO_RETRY_POLICY, RetryPolicy
from frame_logger.stores.base import BlobStore, DocumentFeed

from .errors import EncodeFailure, FrameLoggerError, MetadataWriteFailure, UploadFailure
from .imaging import encode_jpeg
from .records import LogEntry, Session, blob_key, images_collection

FailureCallback = Callable[[LogEntry, FrameLoggerError], None]
Encoder = Callable[..., bytes]

_STOP = object()


class UploadPipeline:
    """Single-worker queue: encode, upload blob, write metadata, next.

    Exactly one entry is in flight at a time and entries leave in the order
    they were enqueued. A later frame can therefore never reach the document
    feed before an earlier one, whatever the network does. Throughput is the
    price.

    A failing entry is logged, counted and dropped; the worker moves on.
    """

    def __init__(
        self,
        session: Session,
        blob_store: BlobStore,
        feed: DocumentFeed,
        *,
        collection: Optional[str] = None,
        jpeg_quality: int = 95,
        fix_orientation: bool = False,
        retry_policy: Optional[RetryPolicy] = None,
        operation_timeout: Optional[float] = None,
        encoder: Encoder = encode_jpeg,
        on_failure: Optional[FailureCallback] = None,
        logger: LoggerLike = None,
    ) -> None:
        self._logger = ensure_structured_logger(logger, fallback_name="UploadPipeline")
        self._session = session
        self._blob_store = blob_store
        self._feed = feed
        self._collection = collection or images_collection(session.session_id)
        self._jpeg_quality = jpeg_quality
        self._fix_orientation = fix_orientation
        self._retry = retry_policy or NO_RETRY_POLICY
        self._timeout = operation_timeout
        self._encoder = encoder
        self._on_failure = on_failure
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._queue: Optional[asyncio.Queue] = None
        self._task: Optional[asyncio.Task] = None
        self._closing = False
        self._metrics: Dict[str, int] = {
            "queued": 0,
            "uploaded": 0,
            "dropped_encode": 0,
            "dropped_upload": 0,
            "dropped_metadata": 0,
            "dropped_pipeline": 0,
            "dropped_not_running": 0,
        }

    @property
    def collection(self) -> str:
        return self._collection

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def metrics(self) -> Dict[str, int]:
        return dict(self._metrics)

    # ------------------------------------------------------------------
    # Lifecycle

    async def start(self) -> None:
        if self.running:
            return
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        self._closing = False
        self._task = create_logged_task(self._worker(), logger=self._logger, context="upload-pipeline")
        self._logger.info(
            "Upload pipeline started for session %s (retries %s)",
            self._session.session_id,
            "on" if self._retry.retries_enabled else "off",
        )

    async def join(self) -> None:
        """Wait until everything enqueued so far has been processed.

        Returns at once when no worker is running.
        """
        if not self._queue or not self.running:
            return
        # Let enqueue callbacks scheduled before this call land in the queue.
        await asyncio.sleep(0)
        await self._queue.join()

    async def stop(self, *, drain: bool = True) -> None:
        """Stop the worker.

        With ``drain`` every entry enqueued before this call is still
        processed; entries arriving later are dropped as ``not_running``.
        """
        if not self._task or not self._loop:
            return
        if drain and self.running:
            # Scheduled behind any pending enqueue callbacks, so those land first.
            self._loop.call_soon_threadsafe(self._close)
            await asyncio.shield(self._task)
        else:
            self._closing = True
            await cancel_and_wait(self._task)
        self._task = None
        self._logger.info("Upload pipeline stopped: %s", self._metrics)

    # ------------------------------------------------------------------
    # Producer side

    def enqueue(self, entry: LogEntry) -> None:
        """Queue ``entry``; safe to call from any thread.

        Every enqueue goes through ``call_soon_threadsafe`` so entries from
        the loop thread and from capture threads share one FIFO, and metrics
        are only touched on the loop thread while the loop runs.
        """
        loop = self._loop
        if loop is None or loop.is_closed() or not loop.is_running():
            self._reject(entry)
            return
        loop.call_soon_threadsafe(self._put, entry)

    def _put(self, entry: LogEntry) -> None:
        if self._closing or not self.running or self._queue is None:
            self._reject(entry)
            return
        self._metrics["queued"] += 1
        self._queue.put_nowait(entry)

    def _close(self) -> None:
        self._closing = True
        if self._queue is not None:
            self._queue.put_nowait(_STOP)

    def _reject(self, entry: LogEntry) -> None:
        self._metrics["dropped_not_running"] += 1
        self._logger.warning("Pipeline not running, dropping entry %d", entry.entry_id)

    # ------------------------------------------------------------------
    # Worker

    async def _worker(self) -> None:
        assert self._queue is not None
        while True:
            item = await self._queue.get()
            try:
                if item is _STOP:
                    return
                await self._process(item)
                self._metrics["uploaded"] += 1
            except FrameLoggerError as exc:
                self._report(item, exc)
            except Exception as exc:
                self._report(item, FrameLoggerError(item.entry_id, f"unexpected error: {exc}", cause=exc))
            finally:
                self._queue.task_done()

    async def _process(self, entry: LogEntry) -> None:
        try:
            data = await asyncio.to_thread(
                self._encoder,
                entry.image,
                quality=self._jpeg_quality,
                fix_orientation=self._fix_orientation,
            )
        except Exception as exc:
            raise EncodeFailure(entry.entry_id, f"could not convert image to JPEG: {exc}", cause=exc) from exc
        entry.image = None

        key = blob_key(self._session.session_id, entry.entry_id)
        try:
            await self._call(lambda: self._blob_store.put(key, data), f"upload {key}")
            link = await self._call(lambda: self._blob_store.get_download_url(key), f"download URL {key}")
        except Exception as exc:
            raise UploadFailure(entry.entry_id, f"failed to upload image: {exc}", cause=exc) from exc
        if not link:
            raise UploadFailure(entry.entry_id, "blob store returned an empty download URL")
        entry.link = str(link)

        fields = entry.metadata_fields()
        try:
            await self._call(
                lambda: self._feed.set_merged_fields(self._collection, str(entry.entry_id), fields),
                f"metadata {entry.entry_id}",
            )
        except Exception as exc:
            raise MetadataWriteFailure(entry.entry_id, f"failed to store document: {exc}", cause=exc) from exc

        self._logger.debug("Entry %d uploaded (%d bytes) -> %s", entry.entry_id, len(data), entry.link)

    async def _call(self, operation: Callable[[], Awaitable[Any]], label: str) -> Any:
        return await self._retry.run(operation, timeout=self._timeout, label=label)

    def _report(self, entry: LogEntry, error: FrameLoggerError) -> None:
        self._metrics[f"dropped_{error.stage}"] += 1
        self._logger.error("Dropped entry %d at %s stage: %s", error.entry_id, error.stage, error)
        if self._on_failure is None:
            return
        try:
            self._on_failure(entry, error)
        except Exception:
            self._logger.exception("Failure callback raised for entry %d", error.entry_id)


__all__ = ["UploadPipeline"]
