"""LogSession: the caller-facing frame logger."""

from __future__ import annotations

import threading
from typing import Any, Callable, Optional

from frame_logger.core.logging_utils import LoggerLike, ensure_structured_logger
from frame_logger.core.retry_policy import RetryPolicy
from frame_logger.stores.base import BlobStore, DocumentFeed

from .config import DebuggerConfig
from .pipeline import FailureCallback, UploadPipeline
from .rate_limiter import RateLimiter
from .records import LogEntry, Session, images_collection


class LogSession:
    """Admits frames, numbers them, and hands them to the upload pipeline.

    One LogSession is one logging session: construct it once, inject it where
    frames are produced, and keep it for the life of the run::

        session = LogSession(blob_store, feed)
        async with session:
            ...
            session.submit(frame, "after threshold")  # from any thread

    ``submit`` never blocks on I/O and never reports upload failures; those
    are logged by the pipeline. Entry ids and capture times are fixed when a
    frame is admitted, not when its upload finishes.
    """

    def __init__(
        self,
        blob_store: BlobStore,
        feed: DocumentFeed,
        *,
        config: Optional[DebuggerConfig] = None,
        session: Optional[Session] = None,
        clock: Optional[Callable[[], float]] = None,
        retry_policy: Optional[RetryPolicy] = None,
        on_failure: Optional[FailureCallback] = None,
        pipeline: Optional[UploadPipeline] = None,
        logger: LoggerLike = None,
    ) -> None:
        self.config = config or DebuggerConfig()
        self._limiter = RateLimiter(clock=clock)
        self._session = session or Session.create(self._limiter.now)
        self._logger = ensure_structured_logger(logger, fallback_name="LogSession").bind(session=self._session.session_id)
        self._feed = feed
        self._lock = threading.Lock()
        self._next_sequence_id = 0
        self._started = False
        self._pipeline = pipeline or UploadPipeline(
            self._session,
            blob_store,
            feed,
            collection=images_collection(
                self._session.session_id,
                sessions=self.config.sessions_collection,
                images=self.config.images_collection,
            ),
            jpeg_quality=self.config.jpeg_quality,
            fix_orientation=self.config.fix_orientation,
            retry_policy=retry_policy or self.config.retry_policy(),
            operation_timeout=self.config.timeout,
            on_failure=on_failure,
            logger=self._logger.getChild("pipeline"),
        )

    # ------------------------------------------------------------------
    # Read-only state

    @property
    def session(self) -> Session:
        return self._session

    @property
    def session_id(self) -> str:
        return self._session.session_id

    @property
    def pipeline(self) -> UploadPipeline:
        return self._pipeline

    @property
    def next_sequence_id(self) -> int:
        return self._next_sequence_id

    @property
    def logs_blocked_until(self) -> Optional[float]:
        """Epoch time when the next log call will be allowed through, if blocked by time."""
        return self._limiter.blocked_until

    @property
    def logs_left_for_unblock(self) -> int:
        """Log calls still to be denied before the counted block lifts."""
        return self._limiter.remaining_blocked_calls

    @property
    def unblock_occurred(self) -> bool:
        """True from the moment the last block lifts until the next admitted log.

        ``block_next_logs(2) -> submit -> submit -> unblock_occurred ->
        submit -> not unblock_occurred``
        """
        return self._limiter.unblock_occurred

    # ------------------------------------------------------------------
    # Lifecycle

    async def start(self) -> None:
        if self._started:
            return
        await self._pipeline.start()
        self._started = True
        try:
            await self._feed.set_merged_fields(
                self.config.sessions_collection,
                self._session.session_id,
                self._session.header_fields(),
            )
        except Exception:
            self._logger.exception("Failed to write session header")
        self._logger.info("Logging session started")

    async def flush(self) -> None:
        """Wait for every admitted entry so far to finish its upload attempt."""
        await self._pipeline.join()

    async def stop(self) -> None:
        if not self._started:
            return
        self._started = False
        await self._pipeline.stop(drain=True)
        self._logger.info("Logging session stopped after %d entries", self._next_sequence_id)

    async def __aenter__(self) -> "LogSession":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    # ------------------------------------------------------------------
    # Logging

    def submit(self, image: Any, message: str = "", now: Optional[float] = None) -> bool:
        """Log ``image`` with ``message`` if logging is not blocked.

        Returns whether the frame was admitted. Admission, id assignment and
        enqueue happen under one lock, so the pipeline sees entries in id
        order even with several producer threads.
        """
        with self._lock:
            current = self._limiter.now() if now is None else now
            if not self._limiter.check_and_advance(current).admitted:
                return False
            self._limiter.mark_logged()

            entry = LogEntry(
                entry_id=self._next_sequence_id,
                capture_time=current,
                message=message,
                image=image,
            )
            self._next_sequence_id += 1
            self._pipeline.enqueue(entry)
        return True

    def block_logs_for(self, seconds: float) -> None:
        """Ignore every ``submit`` for ``seconds``.

        Blocks compound: calling this while a timed block is active extends
        it by ``seconds`` instead of restarting it. Combined with
        ``block_next_logs``, logging resumes when the last block lifts.
        """
        with self._lock:
            self._limiter.block_logs_for(seconds)

    def block_next_logs(self, count: int) -> None:
        """Ignore the next ``count`` calls to ``submit``.

        Blocks compound. When re-arming from a frame callback, check
        ``logs_left_for_unblock == 0 and not unblock_occurred``; checking only
        the counter re-blocks on the very call that lifted the block, forever.
        """
        with self._lock:
            self._limiter.block_next_logs(count)


__all__ = ["LogSession"]
