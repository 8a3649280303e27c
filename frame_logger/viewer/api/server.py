"""
Viewer Server - aiohttp server exposing the document feed to browsers.

Runs on the host application's event loop next to the LogSession, so a
browser-side viewer can fetch the latest session, its entries, and an
event stream of new entries.
"""

from typing import Optional

from aiohttp import web

from frame_logger.core.logging_utils import get_module_logger
from frame_logger.debugger.records import IMAGES_COLLECTION, SESSIONS_COLLECTION
from frame_logger.stores.base import DocumentFeed

from .middleware import error_handling_middleware, request_logging_middleware
from .routes import COLLECTIONS_KEY, FEED_KEY, setup_viewer_routes


logger = get_module_logger("ViewerServer")


def create_app(
    feed: DocumentFeed,
    *,
    sessions_collection: str = SESSIONS_COLLECTION,
    images_collection: str = IMAGES_COLLECTION,
) -> web.Application:
    app = web.Application(middlewares=[request_logging_middleware, error_handling_middleware])
    app[FEED_KEY] = feed
    app[COLLECTIONS_KEY] = (sessions_collection, images_collection)
    setup_viewer_routes(app)
    return app


class ViewerServer:

    def __init__(
        self,
        feed: DocumentFeed,
        host: str = "127.0.0.1",
        port: int = 8080,
        *,
        sessions_collection: str = SESSIONS_COLLECTION,
        images_collection: str = IMAGES_COLLECTION,
    ):
        self.feed = feed
        self.host = host
        self.port = port
        self._collections = (sessions_collection, images_collection)
        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None

    @property
    def running(self) -> bool:
        return self._runner is not None

    async def start(self) -> None:
        """Start serving (non-blocking)."""
        if self.running:
            logger.warning("Viewer server already running")
            return

        sessions, images = self._collections
        app = create_app(self.feed, sessions_collection=sessions, images_collection=images)
        self._runner = web.AppRunner(app)
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, self.host, self.port)
        await self._site.start()
        logger.info("Viewer server started on http://%s:%d", self.host, self.port)

    async def stop(self) -> None:
        if not self.running:
            return
        logger.info("Stopping viewer server...")
        await self._runner.cleanup()
        self._runner = None
        self._site = None
        logger.info("Viewer server stopped")
