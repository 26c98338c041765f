"""In-memory sliding window throttle for failed login attempts."""

from __future__ import annotations

import time
from collections import deque
from threading import Lock
from typing import Callable, Deque, DefaultDict, Protocol


class LoginThrottle(Protocol):
    def is_blocked(self, key: str) -> bool: ...

    def register_failure(self, key: str) -> None: ...

    def clear(self, key: str) -> None: ...


class SlidingWindowLoginThrottle:
    """Thread-safe per-key failure counter over a sliding window.

    At most ``max_keys`` keys are tracked. Once the map is full, keys whose
    failures all fell out of the window are dropped first, then the keys with
    the oldest last failure.
    """

    def __init__(
        self,
        max_failures: int,
        window_seconds: int,
        *,
        max_keys: int = 10_000,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._max_failures = max_failures
        self._window = window_seconds
        self._max_keys = max_keys
        self._clock = clock
        self._failures: DefaultDict[str, Deque[float]] = DefaultDict(deque)
        self._lock = Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._failures)

    def _prune(self, queue: Deque[float], now: float) -> None:
        while queue and now - queue[0] > self._window:
            queue.popleft()

    def _evict(self, now: float) -> None:
        for key in list(self._failures):
            queue = self._failures[key]
            self._prune(queue, now)
            if not queue:
                del self._failures[key]
        overflow = len(self._failures) - self._max_keys
        if overflow > 0:
            oldest = sorted(self._failures, key=lambda k: self._failures[k][-1])[:overflow]
            for key in oldest:
                del self._failures[key]

    def is_blocked(self, key: str) -> bool:
        """Return ``True`` once ``key`` reached the failure limit within the window."""
        now = self._clock()
        with self._lock:
            queue = self._failures.get(key)
            if not queue:
                return False
            self._prune(queue, now)
            if not queue:
                del self._failures[key]
                return False
            return len(queue) >= self._max_failures

    def register_failure(self, key: str) -> None:
        now = self._clock()
        with self._lock:
            queue = self._failures[key]
            self._prune(queue, now)
            queue.append(now)
            if len(self._failures) > self._max_keys:
                self._evict(now)

    def clear(self, key: str) -> None:
        with self._lock:
            self._failures.pop(key, None)
