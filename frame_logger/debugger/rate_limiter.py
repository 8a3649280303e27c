"""Admission control for frame logging.

A live video pipeline rarely needs every frame logged, so callers throttle
logging with two compounding blocks:

* ``block_logs_for(seconds)`` denies every attempt until a deadline;
* ``block_next_logs(count)`` denies the next ``count`` attempts.

When both are active, logging resumes once the *last* constraint is lifted.
``unblock_occurred`` flips to True at the moment the last constraint lifts and
stays True until the next admitted log (cleared through ``mark_logged``) or the
next block request.

The limiter is not thread-safe on its own; ``LogSession`` serializes access.
"""

from __future__ import annotations

import enum
import time
from typing import Callable, Optional


class Decision(enum.Enum):
    ADMITTED = "admitted"
    DENIED = "denied"

    @property
    def admitted(self) -> bool:
        return self is Decision.ADMITTED


class RateLimiter:
    """Decides, per log attempt, whether the frame goes through.

    Example, logging one frame every four seconds::

        def on_frame(frame):
            session.submit(frame, "processed")
            if session.logs_blocked_until is None:
                session.block_logs_for(4)

    Counted blocks need one more check. Re-arming whenever
    ``remaining_blocked_calls == 0`` blocks forever: the call that lifts the
    block leaves the counter at zero, the re-arm fires again, and the next
    attempt is denied too. Re-arm only when no unblock is pending::

        if session.logs_left_for_unblock == 0 and not session.unblock_occurred:
            session.block_next_logs(3)
    """

    def __init__(self, *, clock: Optional[Callable[[], float]] = None) -> None:
        self._clock = clock or time.time
        self._blocked_until: Optional[float] = None
        self._remaining_blocked_calls = 0
        self._unblock_occurred = False

    # ------------------------------------------------------------------
    # State

    @property
    def blocked_until(self) -> Optional[float]:
        """Epoch time before which every attempt is denied, if any."""
        return self._blocked_until

    @property
    def remaining_blocked_calls(self) -> int:
        """Attempts still to be denied before the counted block lifts."""
        return self._remaining_blocked_calls

    @property
    def unblock_occurred(self) -> bool:
        return self._unblock_occurred

    def now(self) -> float:
        return self._clock()

    def is_blocked(self, now: Optional[float] = None) -> bool:
        """Whether an attempt at ``now`` would be denied. Does not advance state."""
        if self._remaining_blocked_calls > 0:
            return True
        if self._blocked_until is None:
            return False
        current = self._clock() if now is None else now
        return current < self._blocked_until

    # ------------------------------------------------------------------
    # Decisions

    def check_and_advance(self, now: Optional[float] = None) -> Decision:
        """Decide one attempt and advance the block state.

        Order matters: the counted block is consumed before the timed block
        is even looked at, so an attempt that lifts the counted block is still
        denied and the timed block is only checked once the counter is spent.
        """
        if self._remaining_blocked_calls > 0:
            self._remaining_blocked_calls -= 1
            if self._remaining_blocked_calls == 0 and self._blocked_until is None:
                self._unblock_occurred = True
            return Decision.DENIED

        if self._blocked_until is not None:
            current = self._clock() if now is None else now
            if current < self._blocked_until:
                return Decision.DENIED
            self._blocked_until = None
            self._unblock_occurred = True

        return Decision.ADMITTED

    def mark_logged(self) -> None:
        """Record that an admitted attempt went through."""
        self._unblock_occurred = False

    # ------------------------------------------------------------------
    # Blocks

    def block_logs_for(self, seconds: float, now: Optional[float] = None) -> None:
        """Deny every attempt for ``seconds``; extends an active timed block."""
        if seconds <= 0:
            return

        if self._blocked_until is None:
            current = self._clock() if now is None else now
            self._blocked_until = current + seconds
        else:
            self._blocked_until += seconds

        self._unblock_occurred = False

    def block_next_logs(self, count: int) -> None:
        """Deny the next ``count`` attempts; adds to an active counted block."""
        if count <= 0:
            return
        self._remaining_blocked_calls += count
        self._unblock_occurred = False


__all__ = ["Decision", "RateLimiter"]
