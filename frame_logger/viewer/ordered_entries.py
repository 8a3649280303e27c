"""Entries known to the viewer, kept in ascending id order."""

from __future__ import annotations

import bisect
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Tuple

from frame_logger.debugger.records import CAPTURE_TIME_FIELD, LINK_FIELD, MESSAGE_FIELD, to_epoch
from frame_logger.stores.base import Document


@dataclass(slots=True)
class FeedEntry:
    entry_id: int
    link: Optional[str] = None
    capture_time: Optional[float] = None
    message: str = ""

    @classmethod
    def from_document(cls, document: Document) -> Optional["FeedEntry"]:
        """Build an entry from an image document; None if its id is not an integer."""
        try:
            entry_id = int(document.document_id)
        except (TypeError, ValueError):
            return None
        return cls(
            entry_id=entry_id,
            link=document.get(LINK_FIELD),
            capture_time=to_epoch(document.get(CAPTURE_TIME_FIELD)),
            message=str(document.get(MESSAGE_FIELD) or ""),
        )

    def to_json(self) -> Dict[str, Any]:
        return {
            "id": self.entry_id,
            "link": self.link,
            "captureTime": self.capture_time,
            "message": self.message,
        }


class OrderedEntries:
    """Sorted id list plus entries by id.

    Arrival order does not matter: an entry's position is found by binary
    search over the ids already known, and a repeated id replaces the entry
    in place instead of adding a second one.
    """

    def __init__(self) -> None:
        self._ids: List[int] = []
        self._entries: Dict[int, FeedEntry] = {}

    def __len__(self) -> int:
        return len(self._ids)

    def __iter__(self) -> Iterator[FeedEntry]:
        return (self._entries[entry_id] for entry_id in self._ids)

    def __contains__(self, entry_id: object) -> bool:
        return entry_id in self._entries

    @property
    def ids(self) -> List[int]:
        return list(self._ids)

    def get(self, entry_id: int) -> Optional[FeedEntry]:
        return self._entries.get(entry_id)

    def upsert(self, entry: FeedEntry) -> Tuple[Optional[int], bool]:
        """Add or replace ``entry``.

        Returns ``(predecessor_id, inserted)``: the id directly before the
        entry (None when it is the smallest) and whether it was new.
        """
        index = bisect.bisect_left(self._ids, entry.entry_id)
        inserted = entry.entry_id not in self._entries
        if inserted:
            self._ids.insert(index, entry.entry_id)
        self._entries[entry.entry_id] = entry
        predecessor = self._ids[index - 1] if index > 0 else None
        return predecessor, inserted

    def clear(self) -> None:
        self._ids.clear()
        self._entries.clear()


__all__ = ["FeedEntry", "OrderedEntries"]
