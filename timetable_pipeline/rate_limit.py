"""Sliding-window admission limiter for job starts."""

from __future__ import annotations

import threading
import time
from collections import deque
from typing import Callable


class SlidingWindowLimiter:
    """Allow at most ``max_events`` acquisitions in any ``window_sec`` span.

    Independent of worker concurrency: a free worker still waits here when
    the window is full. ``window_sec <= 0`` disables limiting.
    """

    def __init__(
        self,
        max_events: int,
        window_sec: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_events = max(1, max_events)
        self.window_sec = window_sec
        self._clock = clock
        self._events: deque[float] = deque()
        self._cond = threading.Condition()

    def _prune(self, now: float) -> None:
        while self._events and now - self._events[0] >= self.window_sec:
            self._events.popleft()

    def _wait_time(self, now: float) -> float:
        """Seconds until a slot frees up (0 when one is free). Called under lock."""
        if self.window_sec <= 0:
            return 0.0
        self._prune(now)
        if len(self._events) < self.max_events:
            return 0.0
        return self._events[0] + self.window_sec - now

    def try_acquire(self) -> bool:
        with self._cond:
            now = self._clock()
            if self._wait_time(now) > 0:
                return False
            self._events.append(now)
            return True

    def acquire(self, timeout: float | None = None) -> bool:
        """Block until a slot is free; False if *timeout* elapses first."""
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            while True:
                now = self._clock()
                wait = self._wait_time(now)
                if wait <= 0:
                    self._events.append(now)
                    return True
                if deadline is not None:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        return False
                    wait = min(wait, remaining)
                self._cond.wait(wait)

    def in_window(self) -> int:
        with self._cond:
            self._prune(self._clock())
            return len(self._events)
