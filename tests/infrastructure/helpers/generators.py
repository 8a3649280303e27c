"""Frame and document generators for the frame_logger test suite."""

from __future__ import annotations

import io
from datetime import datetime, timezone
from typing import Any, Optional

import numpy as np
from PIL import Image

from frame_logger.debugger.records import (
    CAPTURE_TIME_FIELD,
    LINK_FIELD,
    MESSAGE_FIELD,
    SESSION_START_FIELD,
)
from frame_logger.stores.base import Document


def bgr_frame(width: int = 8, height: int = 4, color=(255, 0, 0)) -> np.ndarray:
    """Solid-color frame in OpenCV BGR order."""
    frame = np.zeros((height, width, 3), dtype=np.uint8)
    frame[:, :] = color
    return frame


def make_jpeg(width: int = 8, height: int = 4, color=(0, 0, 255), orientation: Optional[int] = None) -> bytes:
    image = Image.new("RGB", (width, height), color)
    buffer = io.BytesIO()
    options: dict[str, Any] = {"format": "JPEG", "quality": 90}
    if orientation is not None:
        exif = Image.Exif()
        exif[0x0112] = orientation
        options["exif"] = exif.tobytes()
    image.save(buffer, **options)
    return buffer.getvalue()


def make_document(entry_id: Any, *, collection: str = "sessions/s1/images", message: str = "",
                  capture_time: float = 1_700_000_000.0) -> Document:
    return Document(
        collection=collection,
        document_id=str(entry_id),
        fields={
            LINK_FIELD: f"memory://bucket/s1/{entry_id}.jpeg",
            CAPTURE_TIME_FIELD: datetime.fromtimestamp(capture_time, tz=timezone.utc),
            MESSAGE_FIELD: message or f"frame {entry_id}",
        },
    )


def session_document(session_id: str, start: float, collection: str = "sessions") -> Document:
    return Document(
        collection=collection,
        document_id=session_id,
        fields={SESSION_START_FIELD: datetime.fromtimestamp(start, tz=timezone.utc)},
    )
