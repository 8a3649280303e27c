"""In-process collaborators for local runs, demos and tests."""

from __future__ import annotations

import asyncio
import copy
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple
from urllib.parse import quote

from frame_logger.core.logging_utils import LoggerLike, ensure_structured_logger

from .base import Document, FeedSnapshot, Query


class InMemoryBlobStore:
    """Keeps blobs in a dict and hands out ``memory://`` URLs."""

    def __init__(self, bucket: str = "frame-logger") -> None:
        self.bucket = bucket
        self._blobs: Dict[str, bytes] = {}

    async def put(self, key: str, data: bytes) -> str:
        self._blobs[key] = bytes(data)
        return self._url_for(key)

    async def get_download_url(self, key: str) -> str:
        if key not in self._blobs:
            raise KeyError(f"no blob stored under {key!r}")
        return self._url_for(key)

    def read(self, key: str) -> bytes:
        return self._blobs[key]

    def keys(self) -> List[str]:
        return sorted(self._blobs)

    def _url_for(self, key: str) -> str:
        return f"memory://{self.bucket}/{quote(key)}"


class _Subscription:
    __slots__ = ("query", "queue")

    def __init__(self, query: Query) -> None:
        self.query = query
        self.queue: asyncio.Queue[Optional[FeedSnapshot]] = asyncio.Queue()


class InMemoryDocumentFeed:
    """Document store with live queries, all on the running event loop.

    Writes are pushed to every matching subscription. Queries with a limit
    only push documents that fall inside the limited result after the write,
    which is what a "latest session" query needs.
    """

    def __init__(self, *, logger: LoggerLike = None) -> None:
        self._logger = ensure_structured_logger(logger, fallback_name="InMemoryDocumentFeed")
        self._documents: Dict[Tuple[str, str], Document] = {}
        self._subscriptions: List[_Subscription] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    async def set_merged_fields(self, collection: str, document_id: str, fields: Dict[str, Any]) -> None:
        key = (collection, str(document_id))
        existing = self._documents.get(key)
        merged = dict(existing.fields) if existing else {}
        merged.update(copy.deepcopy(fields))
        document = Document(collection=collection, document_id=str(document_id), fields=merged)
        self._documents[key] = document
        self._publish(document, created=existing is None)

    async def get(self, query: Query) -> List[Document]:
        return query.apply(self._documents.values())

    def document(self, collection: str, document_id: str) -> Optional[Document]:
        return self._documents.get((collection, str(document_id)))

    async def subscribe(self, query: Query) -> AsyncIterator[FeedSnapshot]:
        subscription = _Subscription(query)
        self._subscriptions.append(subscription)
        try:
            yield FeedSnapshot(added=query.apply(self._documents.values()))
            while True:
                snapshot = await subscription.queue.get()
                if snapshot is None:
                    return
                yield snapshot
        finally:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

    def disconnect_all(self) -> None:
        """End every live subscription, as a dropped connection would."""
        for subscription in list(self._subscriptions):
            subscription.queue.put_nowait(None)
        self._logger.debug("Disconnected %d subscriptions", len(self._subscriptions))

    def _publish(self, document: Document, *, created: bool) -> None:
        for subscription in self._subscriptions:
            query = subscription.query
            if query.collection != document.collection:
                continue
            if query.limit is not None:
                visible = query.apply(self._documents.values())
                if all(doc.document_id != document.document_id for doc in visible):
                    continue
            if created:
                subscription.queue.put_nowait(FeedSnapshot(added=[document]))
            else:
                subscription.queue.put_nowait(FeedSnapshot(changed=[document]))


__all__ = ["InMemoryBlobStore", "InMemoryDocumentFeed"]
