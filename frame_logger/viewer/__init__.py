"""Viewer side: live, id-ordered rendering of a session's entries."""

from .feed_client import EntryView, FeedState, ListEntryView, LiveFeedClient, ScrollState
from .ordered_entries import FeedEntry, OrderedEntries

__all__ = [
    "EntryView",
    "FeedEntry",
    "FeedState",
    "ListEntryView",
    "LiveFeedClient",
    "OrderedEntries",
    "ScrollState",
]
