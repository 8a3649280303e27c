"""Live viewer for the most recent logging session."""

from __future__ import annotations

import asyncio
import contextlib
import enum
from typing import List, Optional, Protocol

from frame_logger.core.asyncio_utils import cancel_and_wait, create_logged_task
from frame_logger.core.logging_utils import LoggerLike, ensure_structured_logger
from frame_logger.debugger.records import (
    CAPTURE_TIME_FIELD,
    IMAGES_COLLECTION,
    SESSIONS_COLLECTION,
    SESSION_START_FIELD,
    images_collection,
    to_epoch,
)
from frame_logger.stores.base import Document, DocumentFeed, FeedSnapshot, Query

from .ordered_entries import FeedEntry, OrderedEntries


class FeedState(enum.Enum):
    IDLE = "idle"
    WATCHING_SESSION = "watching_session"
    WATCHING_IMAGES = "watching_images"


class EntryView(Protocol):
    """What the client needs from whatever draws the log."""

    def show_session(self, session_id: str, start_time: Optional[float]) -> None: ...

    def clear(self) -> None: ...

    def insert_after(self, predecessor: Optional[int], entry: FeedEntry) -> None:
        """Place ``entry`` right after ``predecessor`` (at the front when None)."""
        ...

    def update(self, entry: FeedEntry) -> None: ...

    def scroll_to_bottom(self) -> None: ...


class ListEntryView:
    """EntryView that keeps rows in a list; handy for headless use and tests."""

    def __init__(self) -> None:
        self.rows: List[FeedEntry] = []
        self.session_id: Optional[str] = None
        self.session_start: Optional[float] = None
        self.scrolls = 0

    @property
    def ids(self) -> List[int]:
        return [row.entry_id for row in self.rows]

    def show_session(self, session_id: str, start_time: Optional[float]) -> None:
        self.session_id = session_id
        self.session_start = start_time

    def clear(self) -> None:
        self.rows.clear()

    def insert_after(self, predecessor: Optional[int], entry: FeedEntry) -> None:
        if predecessor is None:
            self.rows.insert(0, entry)
            return
        position = next(i for i, row in enumerate(self.rows) if row.entry_id == predecessor)
        self.rows.insert(position + 1, entry)

    def update(self, entry: FeedEntry) -> None:
        for i, row in enumerate(self.rows):
            if row.entry_id == entry.entry_id:
                self.rows[i] = entry
                return

    def scroll_to_bottom(self) -> None:
        self.scrolls += 1


class ScrollState:
    """Follow the newest entry until the user scrolls away from the bottom."""

    def __init__(self) -> None:
        self.sticky = True

    def user_scrolled(self, at_bottom: bool) -> None:
        self.sticky = at_bottom

    def reset(self) -> None:
        self.sticky = True


class LiveFeedClient:
    """Watches the newest session and renders its entries in id order.

    ``IDLE -> WATCHING_SESSION -> WATCHING_IMAGES``; every newer session
    observed goes back through ``WATCHING_SESSION``, tearing down the image
    subscription and clearing what was rendered. A dropped subscription is
    re-opened after ``reconnect_delay`` and re-renders from scratch.
    """

    def __init__(
        self,
        feed: DocumentFeed,
        view: Optional[EntryView] = None,
        *,
        sessions_collection: str = SESSIONS_COLLECTION,
        images_collection: str = IMAGES_COLLECTION,
        reconnect_delay: float = 1.0,
        logger: LoggerLike = None,
    ) -> None:
        self._logger = ensure_structured_logger(logger, fallback_name="LiveFeedClient")
        self._feed = feed
        self.view: EntryView = view or ListEntryView()
        self._sessions_collection = sessions_collection
        self._images_collection = images_collection
        self._reconnect_delay = reconnect_delay
        self.entries = OrderedEntries()
        self.scroll = ScrollState()
        self.state = FeedState.IDLE
        self.session_id: Optional[str] = None
        self.session_start: Optional[float] = None
        self._image_task: Optional[asyncio.Task] = None
        self._session_task: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # Lifecycle

    def start(self) -> asyncio.Task:
        if self._session_task is None or self._session_task.done():
            self._session_task = create_logged_task(self.run(), logger=self._logger, context="feed-sessions")
        return self._session_task

    async def stop(self) -> None:
        await cancel_and_wait(self._session_task)
        self._session_task = None
        await self._stop_images()
        self.state = FeedState.IDLE

    async def run(self) -> None:
        """Follow the latest session until cancelled."""
        query = Query(
            self._sessions_collection,
            order_by=SESSION_START_FIELD,
            descending=True,
            limit=1,
        )
        try:
            while True:
                if self.session_id is None:
                    self.state = FeedState.WATCHING_SESSION
                try:
                    async with contextlib.aclosing(self._feed.subscribe(query)) as stream:
                        async for snapshot in stream:
                            await self.handle_session_snapshot(snapshot)
                    self._logger.warning("Session feed ended, resubscribing in %.1fs", self._reconnect_delay)
                except Exception as exc:
                    self._logger.warning(
                        "Session feed dropped (%s), resubscribing in %.1fs", exc, self._reconnect_delay
                    )
                await asyncio.sleep(self._reconnect_delay)
        finally:
            await self._stop_images()
            self.state = FeedState.IDLE

    # ------------------------------------------------------------------
    # Sessions

    async def handle_session_snapshot(self, snapshot: FeedSnapshot) -> None:
        newest = self._newest_session(snapshot.added + snapshot.changed)
        if newest is None:
            return
        start_time = to_epoch(newest.get(SESSION_START_FIELD))
        if newest.document_id == self.session_id:
            return
        if self.session_start is not None and start_time is not None and start_time < self.session_start:
            self._logger.debug("Ignoring older session %s", newest.document_id)
            return
        await self.switch_session(newest.document_id, start_time)

    @staticmethod
    def _newest_session(documents: List[Document]) -> Optional[Document]:
        dated = [doc for doc in documents if to_epoch(doc.get(SESSION_START_FIELD)) is not None]
        if not dated:
            return None
        return max(dated, key=lambda doc: to_epoch(doc.get(SESSION_START_FIELD)))

    async def switch_session(self, session_id: str, start_time: Optional[float]) -> None:
        self.state = FeedState.WATCHING_SESSION
        await self._stop_images()
        self.session_id = session_id
        self.session_start = start_time
        self._reset_entries()
        self.scroll.reset()
        self.view.show_session(session_id, start_time)
        self._logger.info("Watching session %s", session_id)
        self._start_images(session_id)

    async def reconnect(self) -> None:
        """Drop the image subscription and open a fresh one for the same session."""
        if self.session_id is None:
            return
        await self._stop_images()
        self._logger.info("Reconnecting image feed for %s", self.session_id)
        self._start_images(self.session_id)

    def _start_images(self, session_id: str) -> None:
        self._image_task = create_logged_task(
            self._watch_images(session_id),
            logger=self._logger,
            context=f"feed-images:{session_id}",
        )
        self.state = FeedState.WATCHING_IMAGES

    async def _stop_images(self) -> None:
        await cancel_and_wait(self._image_task)
        self._image_task = None

    # ------------------------------------------------------------------
    # Images

    async def _watch_images(self, session_id: str) -> None:
        query = Query(
            images_collection(session_id, sessions=self._sessions_collection, images=self._images_collection),
            order_by=CAPTURE_TIME_FIELD,
        )
        while True:
            try:
                async with contextlib.aclosing(self._feed.subscribe(query)) as stream:
                    # The first snapshot replays everything, so start from nothing.
                    self._reset_entries()
                    async for snapshot in stream:
                        self.handle_image_snapshot(snapshot)
                self._logger.warning("Image feed for %s ended, resubscribing in %.1fs", session_id, self._reconnect_delay)
            except Exception as exc:
                self._logger.warning(
                    "Image feed for %s dropped (%s), resubscribing in %.1fs", session_id, exc, self._reconnect_delay
                )
            await asyncio.sleep(self._reconnect_delay)

    def handle_image_snapshot(self, snapshot: FeedSnapshot) -> None:
        for document in snapshot.added + snapshot.changed:
            entry = FeedEntry.from_document(document)
            if entry is None:
                self._logger.warning("Skipping image document with non-integer id %r", document.document_id)
                continue
            self.render(entry)

    def render(self, entry: FeedEntry) -> None:
        predecessor, inserted = self.entries.upsert(entry)
        if inserted:
            self.view.insert_after(predecessor, entry)
        else:
            self.view.update(entry)
        if self.scroll.sticky:
            self.view.scroll_to_bottom()

    def _reset_entries(self) -> None:
        self.entries.clear()
        self.view.clear()

    # ------------------------------------------------------------------
    # UI events

    def user_scrolled(self, at_bottom: bool) -> None:
        self.scroll.user_scrolled(at_bottom)
        if at_bottom:
            self.view.scroll_to_bottom()


__all__ = ["EntryView", "FeedState", "ListEntryView", "LiveFeedClient", "ScrollState"]
