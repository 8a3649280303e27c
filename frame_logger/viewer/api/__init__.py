"""Read-only HTTP API over the document feed."""

from .server import ViewerServer, create_app

__all__ = ["ViewerServer", "create_app"]
