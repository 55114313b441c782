"""Sliding-window rate limiting for worker side effects."""

import time
from collections import deque
from typing import Callable, Deque


class SlidingWindowRateLimiter:
    """
    Allow at most ``max_events`` within any trailing ``window_seconds``.

    Events are only counted when :meth:`record` is called, so a check and the
    action it guards can be separated by a network call that may fail.
    """

    def __init__(
        self,
        max_events: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_events < 1:
            raise ValueError("max_events must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.max_events = max_events
        self.window_seconds = window_seconds
        self._clock = clock
        self._events: Deque[float] = deque()

    def _prune(self, now: float) -> None:
        cutoff = now - self.window_seconds
        while self._events and self._events[0] <= cutoff:
            self._events.popleft()

    def allowed(self) -> bool:
        """Return True if another event fits in the current window."""
        self._prune(self._clock())
        return len(self._events) < self.max_events

    def record(self) -> None:
        """Count one event at the current time."""
        now = self._clock()
        self._prune(now)
        self._events.append(now)

    def try_acquire(self) -> bool:
        """Check and record in one step."""
        if not self.allowed():
            return False
        self.record()
        return True

    def remaining(self) -> int:
        self._prune(self._clock())
        return max(0, self.max_events - len(self._events))

    def reset(self) -> None:
        self._events.clear()
