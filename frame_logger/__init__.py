"""Frame logging for live video pipelines.

Capture code submits frames to a ``LogSession``; admitted frames are uploaded
in capture order and a ``LiveFeedClient`` shows them as they arrive.
"""

from __future__ import annotations

from importlib import metadata

from .debugger import DebuggerConfig, LogSession, OrientedFrame, Orientation, RateLimiter
from .viewer import LiveFeedClient

try:
    __version__ = metadata.version("frame-logger")
except metadata.PackageNotFoundError:  # pragma: no cover - local dev
    __version__ = "0.0.0"


__all__ = [
    "DebuggerConfig",
    "LiveFeedClient",
    "LogSession",
    "Orientation",
    "OrientedFrame",
    "RateLimiter",
    "__version__",
]
