"""Asyncio helpers for the long-lived pipeline and feed tasks."""

from __future__ import annotations

import asyncio
from typing import Any, Coroutine, Optional

from .logging_utils import LoggerLike, ensure_structured_logger


def add_task_exception_logger(
    task: asyncio.Task[Any],
    *,
    logger: LoggerLike = None,
    context: Optional[str] = None,
) -> asyncio.Task[Any]:
    """Retrieve and log any exception a background task dies with.

    Without this a crashed worker only surfaces as "Task exception was never
    retrieved" when the task is garbage collected.
    """
    task_logger = ensure_structured_logger(logger, fallback_name="asyncio")
    label = context or task.get_name() or "background task"

    def _done(done_task: asyncio.Task[Any]) -> None:
        if done_task.cancelled():
            return
        exc = done_task.exception()
        if exc is not None:
            task_logger.error("Unhandled exception in %s", label, exc_info=exc)

    task.add_done_callback(_done)
    return task


def create_logged_task(
    coro: Coroutine[Any, Any, Any],
    *,
    logger: LoggerLike = None,
    context: Optional[str] = None,
    pending: Optional[set[asyncio.Task[Any]]] = None,
) -> asyncio.Task[Any]:
    """Create a named task on the running loop whose failures get logged."""
    task = asyncio.get_running_loop().create_task(coro, name=context)
    add_task_exception_logger(task, logger=logger, context=context)

    if pending is not None:
        pending.add(task)
        task.add_done_callback(pending.discard)

    return task


async def cancel_and_wait(task: Optional[asyncio.Task[Any]]) -> None:
    """Cancel ``task`` and wait for it to unwind, swallowing its cancellation."""
    if task is None or task.done():
        return
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass


__all__ = ["add_task_exception_logger", "cancel_and_wait", "create_logged_task"]
