"""Failures raised inside the upload pipeline.

None of these reach ``LogSession.submit`` callers: the pipeline worker logs
them, counts them, and moves on to the next entry.
"""

from __future__ import annotations

from typing import Optional


class FrameLoggerError(Exception):
    """Base class for per-entry pipeline failures."""

    stage = "pipeline"

    def __init__(self, entry_id: int, message: str, *, cause: Optional[BaseException] = None) -> None:
        super().__init__(f"entry {entry_id}: {message}")
        self.entry_id = entry_id
        self.cause = cause


class EncodeFailure(FrameLoggerError):
    """The frame could not be serialized to JPEG."""

    stage = "encode"


class UploadFailure(FrameLoggerError):
    """The blob store rejected the bytes or could not produce a download URL."""

    stage = "upload"


class MetadataWriteFailure(FrameLoggerError):
    """The document feed rejected the entry's metadata record."""

    stage = "metadata"


__all__ = ["EncodeFailure", "FrameLoggerError", "MetadataWriteFailure", "UploadFailure"]
