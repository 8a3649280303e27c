"""
Viewer API middleware - request logging and JSON error formatting.

Every error leaves the API as::

    {"error": {"code": "ERROR_CODE", "message": "..."}, "status": 404}
"""

import time
from typing import Callable

from aiohttp import web

from frame_logger.core.logging_utils import get_module_logger


logger = get_module_logger("ViewerAPI")


def create_error_response(code: str, message: str, status: int = 400) -> web.Response:
    return web.json_response({"error": {"code": code, "message": message}, "status": status}, status=status)


@web.middleware
async def request_logging_middleware(request: web.Request, handler: Callable) -> web.StreamResponse:
    start_time = time.perf_counter()
    response = await handler(request)
    elapsed_ms = (time.perf_counter() - start_time) * 1000
    logger.debug("%s %s -> %s (%.1fms)", request.method, request.path, response.status, elapsed_ms)
    return response


@web.middleware
async def error_handling_middleware(request: web.Request, handler: Callable) -> web.StreamResponse:
    try:
        return await handler(request)
    except web.HTTPException as e:
        code = e.reason.upper().replace(" ", "_") if e.reason else "HTTP_ERROR"
        return create_error_response(code, e.text or str(e), status=e.status)
    except ValueError as e:
        logger.warning("Validation error on %s: %s", request.path, e)
        return create_error_response("VALIDATION_ERROR", str(e), status=400)
    except Exception as e:
        logger.exception("Unexpected error on %s: %s", request.path, e)
        return create_error_response("INTERNAL_ERROR", "An unexpected error occurred", status=500)
