"""Blob store and document feed collaborators."""

from .base import BlobStore, Document, DocumentFeed, FeedSnapshot, Query
from .local import LocalBlobStore
from .memory import InMemoryBlobStore, InMemoryDocumentFeed

__all__ = [
    "BlobStore",
    "Document",
    "DocumentFeed",
    "FeedSnapshot",
    "InMemoryBlobStore",
    "InMemoryDocumentFeed",
    "LocalBlobStore",
    "Query",
]
