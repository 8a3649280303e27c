"""Viewer routes - read-only access to sessions and their entries."""

import contextlib
import json
from datetime import datetime
from typing import Any, Dict

from aiohttp import web

from frame_logger.core.logging_utils import get_module_logger
from frame_logger.debugger.records import SESSION_START_FIELD, images_collection
from frame_logger.stores.base import Document, DocumentFeed, Query
from frame_logger.viewer.ordered_entries import FeedEntry, OrderedEntries

from .middleware import create_error_response

logger = get_module_logger("ViewerRoutes")

FEED_KEY = web.AppKey("feed", DocumentFeed)
COLLECTIONS_KEY = web.AppKey("collections", tuple)


def setup_viewer_routes(app: web.Application) -> None:
    app.router.add_get("/api/v1/health", health_handler)
    app.router.add_get("/api/v1/sessions/latest", latest_session_handler)
    app.router.add_get("/api/v1/sessions/{session_id}/entries", entries_handler)
    app.router.add_get("/api/v1/sessions/{session_id}/stream", stream_handler)


def _session_json(document: Document) -> Dict[str, Any]:
    start = document.get(SESSION_START_FIELD)
    return {
        "session_id": document.document_id,
        SESSION_START_FIELD: start.isoformat() if isinstance(start, datetime) else start,
    }


def _images_query(request: web.Request) -> Query:
    sessions, images = request.app[COLLECTIONS_KEY]
    session_id = request.match_info["session_id"]
    return Query(images_collection(session_id, sessions=sessions, images=images))


async def health_handler(request: web.Request) -> web.Response:
    """GET /api/v1/health"""
    return web.json_response({"status": "healthy"})


async def latest_session_handler(request: web.Request) -> web.Response:
    """GET /api/v1/sessions/latest - newest session by start time."""
    feed = request.app[FEED_KEY]
    sessions, _ = request.app[COLLECTIONS_KEY]
    documents = await feed.get(Query(sessions, order_by=SESSION_START_FIELD, descending=True, limit=1))
    if not documents:
        return create_error_response("NOT_FOUND", "No logging session has been recorded yet", status=404)
    return web.json_response(_session_json(documents[0]))


async def entries_handler(request: web.Request) -> web.Response:
    """GET /api/v1/sessions/{session_id}/entries - entries in id order."""
    feed = request.app[FEED_KEY]
    ordered = OrderedEntries()
    for document in await feed.get(_images_query(request)):
        entry = FeedEntry.from_document(document)
        if entry is not None:
            ordered.upsert(entry)
    return web.json_response({
        "session_id": request.match_info["session_id"],
        "entries": [entry.to_json() for entry in ordered],
    })


async def stream_handler(request: web.Request) -> web.StreamResponse:
    """GET /api/v1/sessions/{session_id}/stream - server-sent events.

    Existing entries come first as ``added`` events, then live changes.
    Events may arrive out of id order; clients sort by ``id``.
    """
    feed = request.app[FEED_KEY]
    response = web.StreamResponse(headers={"Content-Type": "text/event-stream", "Cache-Control": "no-cache"})
    await response.prepare(request)

    try:
        async with contextlib.aclosing(feed.subscribe(_images_query(request))) as stream:
            async for snapshot in stream:
                for kind, documents in (("added", snapshot.added), ("changed", snapshot.changed)):
                    for document in documents:
                        entry = FeedEntry.from_document(document)
                        if entry is None:
                            continue
                        payload = json.dumps(entry.to_json())
                        await response.write(f"event: {kind}\ndata: {payload}\n\n".encode("utf-8"))
    except ConnectionResetError:
        logger.debug("Stream client for %s went away", request.match_info["session_id"])

    return response
