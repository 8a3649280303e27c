"""Session and entry records, plus the persisted document layout.

Field names in this module are the contract between the writer
(``UploadPipeline``) and every reader (``LiveFeedClient``, the viewer API).
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

SESSIONS_COLLECTION = "sessions"
IMAGES_COLLECTION = "images"

SESSION_START_FIELD = "sessionStartTime"
ID_FIELD = "id"
LINK_FIELD = "link"
CAPTURE_TIME_FIELD = "captureTime"
MESSAGE_FIELD = "message"

BLOB_EXTENSION = "jpeg"


def to_datetime(epoch_seconds: float) -> datetime:
    return datetime.fromtimestamp(epoch_seconds, tz=timezone.utc)


def to_epoch(value: Any) -> Optional[float]:
    """Accept a datetime or a number, return epoch seconds (None if neither)."""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.timestamp()
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    return None


@dataclass(slots=True, frozen=True)
class Session:
    """One continuous run of logging."""

    session_id: str
    start_time: float

    @classmethod
    def create(cls, clock: Callable[[], float] = time.time) -> "Session":
        return cls(session_id=str(uuid.uuid4()), start_time=clock())

    def header_fields(self) -> Dict[str, Any]:
        return {SESSION_START_FIELD: to_datetime(self.start_time)}


@dataclass(slots=True)
class LogEntry:
    """An admitted frame on its way through the upload pipeline.

    ``entry_id`` and ``capture_time`` are fixed at admission. ``link`` is the
    only field written afterwards, once the blob upload succeeds.
    """

    entry_id: int
    capture_time: float
    message: str
    image: Any = field(repr=False)
    link: Optional[str] = None

    def metadata_fields(self) -> Dict[str, Any]:
        if self.link is None:
            raise ValueError(f"entry {self.entry_id} has no storage link yet")
        return {
            ID_FIELD: self.entry_id,
            LINK_FIELD: self.link,
            CAPTURE_TIME_FIELD: to_datetime(self.capture_time),
            MESSAGE_FIELD: self.message,
        }


def blob_key(session_id: str, entry_id: int) -> str:
    return f"{session_id}/{entry_id}.{BLOB_EXTENSION}"


def images_collection(session_id: str, *, sessions: str = SESSIONS_COLLECTION, images: str = IMAGES_COLLECTION) -> str:
    return f"{sessions}/{session_id}/{images}"


__all__ = [
    "BLOB_EXTENSION",
    "CAPTURE_TIME_FIELD",
    "ID_FIELD",
    "IMAGES_COLLECTION",
    "LINK_FIELD",
    "LogEntry",
    "MESSAGE_FIELD",
    "SESSIONS_COLLECTION",
    "SESSION_START_FIELD",
    "Session",
    "blob_key",
    "images_collection",
    "to_datetime",
    "to_epoch",
]
