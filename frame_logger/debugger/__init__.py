"""Frame debugger: admission control, sessions and the upload pipeline."""

from .config import DebuggerConfig
from .errors import EncodeFailure, FrameLoggerError, MetadataWriteFailure, UploadFailure
from .imaging import Orientation, OrientedFrame, encode_jpeg
from .pipeline import UploadPipeline
from .rate_limiter import Decision, RateLimiter
from .records import LogEntry, Session, blob_key, images_collection
from .session import LogSession

__all__ = [
    "DebuggerConfig",
    "Decision",
    "EncodeFailure",
    "FrameLoggerError",
    "LogEntry",
    "LogSession",
    "MetadataWriteFailure",
    "Orientation",
    "OrientedFrame",
    "RateLimiter",
    "Session",
    "UploadFailure",
    "UploadPipeline",
    "blob_key",
    "encode_jpeg",
    "images_collection",
]
