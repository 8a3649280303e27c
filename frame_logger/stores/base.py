"""Collaborator interfaces the debugger and viewer depend on.

Both are kept deliberately small so a cloud SDK (object storage, a document
database with live queries) can be adapted in a few lines and tests can supply
in-memory fakes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional, Protocol, runtime_checkable


@dataclass(slots=True, frozen=True)
class Document:
    collection: str
    document_id: str
    fields: Dict[str, Any] = field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        return self.fields.get(key, default)


@dataclass(slots=True, frozen=True)
class Query:
    """``orderBy(field, dir)`` plus an optional limit over one collection."""

    collection: str
    order_by: Optional[str] = None
    descending: bool = False
    limit: Optional[int] = None

    def apply(self, documents: Iterable[Document]) -> List[Document]:
        docs = [doc for doc in documents if doc.collection == self.collection]
        if self.order_by is not None:
            key = self.order_by
            present = [doc for doc in docs if doc.fields.get(key) is not None]
            missing = [doc for doc in docs if doc.fields.get(key) is None]
            present.sort(key=lambda doc: doc.fields[key], reverse=self.descending)
            docs = present + missing
        if self.limit is not None:
            docs = docs[: max(0, self.limit)]
        return docs


@dataclass(slots=True)
class FeedSnapshot:
    """One push from a live query."""

    added: List[Document] = field(default_factory=list)
    changed: List[Document] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not self.added and not self.changed


@runtime_checkable
class BlobStore(Protocol):
    """Binary payload storage keyed by path-like strings."""

    async def put(self, key: str, data: bytes) -> str:
        """Store ``data`` under ``key`` and return its URL. Raises on failure."""
        ...

    async def get_download_url(self, key: str) -> str:
        """Return a durable absolute URL for ``key``. Raises on failure."""
        ...


@runtime_checkable
class DocumentFeed(Protocol):
    """Ordered document store with live queries.

    ``subscribe`` delivers every pre-existing match as ``added`` in the first
    snapshot, then pushes later additions and changes. Delivery is
    at-least-once and may arrive out of query order.
    """

    async def set_merged_fields(self, collection: str, document_id: str, fields: Dict[str, Any]) -> None:
        ...

    async def get(self, query: Query) -> List[Document]:
        ...

    def subscribe(self, query: Query) -> AsyncIterator[FeedSnapshot]:
        ...


__all__ = ["BlobStore", "Document", "DocumentFeed", "FeedSnapshot", "Query"]
