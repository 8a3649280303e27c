"""
Retry Policy - Exponential backoff for collaborator calls.

The upload pipeline runs without retries by default: one attempt per blob
upload and metadata write. A host that wants hardening passes a policy with
``max_attempts > 1``; delays grow exponentially with optional jitter.
"""

from __future__ import annotations

import asyncio
import random
from typing import Awaitable, Callable, Optional, TypeVar

from frame_logger.core.logging_utils import get_module_logger

logger = get_module_logger("RetryPolicy")

T = TypeVar("T")


class RetryPolicy:
    """
    Configurable retry policy with exponential backoff.

    Usage:
        policy = RetryPolicy(max_attempts=3, base_delay=0.5)
        url = await policy.run(
            lambda: blob_store.put(key, data),
            timeout=10.0,
            label="blob upload",
        )

    ``run`` returns the first successful result, or re-raises the error from
    the final attempt. ``asyncio.CancelledError`` is never retried.
    """

    def __init__(
        self,
        max_attempts: int = 1,
        base_delay: float = 0.5,
        max_delay: float = 10.0,
        backoff_factor: float = 2.0,
        jitter: float = 0.1,
    ):
        """
        Args:
            max_attempts: Attempts including the first one (minimum 1)
            base_delay: Delay before the first retry (seconds)
            max_delay: Upper bound for any single delay (seconds)
            backoff_factor: Multiplier applied per retry
            jitter: Random jitter factor (0.1 = +/-10%)
        """
        self.max_attempts = max(1, int(max_attempts))
        self.base_delay = max(0.0, base_delay)
        self.max_delay = max_delay
        self.backoff_factor = backoff_factor
        self.jitter = jitter

    @property
    def retries_enabled(self) -> bool:
        return self.max_attempts > 1

    def get_delay(self, attempt: int) -> float:
        """Delay before ``attempt`` (1-based; the first attempt never waits)."""
        if attempt <= 1:
            return 0.0

        delay = self.base_delay * (self.backoff_factor ** (attempt - 2))
        delay = min(delay, self.max_delay)

        if self.jitter > 0:
            jitter_range = delay * self.jitter
            delay += random.uniform(-jitter_range, jitter_range)

        return max(0.0, delay)

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        timeout: Optional[float] = None,
        label: str = "operation",
        on_retry: Optional[Callable[[int, BaseException], None]] = None,
    ) -> T:
        """Await ``operation()`` until it succeeds or attempts run out.

        Args:
            operation: Zero-argument factory producing a fresh awaitable
            timeout: Per-attempt timeout in seconds; None or <= 0 disables it
            label: Name used in debug logging
            on_retry: Called with (next_attempt, error) before each retry
        """
        last_error: Optional[BaseException] = None

        for attempt in range(1, self.max_attempts + 1):
            if attempt > 1:
                delay = self.get_delay(attempt)
                if on_retry:
                    on_retry(attempt, last_error)
                logger.debug(
                    "Retrying %s (attempt %d/%d) after %.2fs: %s",
                    label, attempt, self.max_attempts, delay, last_error,
                )
                await asyncio.sleep(delay)

            try:
                if timeout and timeout > 0:
                    return await asyncio.wait_for(operation(), timeout=timeout)
                return await operation()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                last_error = exc

        assert last_error is not None
        raise last_error


NO_RETRY_POLICY = RetryPolicy(max_attempts=1)


__all__ = ["RetryPolicy", "NO_RETRY_POLICY"]
