# =============================================
# File: bidengine/utils/ratelimit.py
# Purpose: Injectable per-key rate limiter (sliding window, in-memory)
# =============================================
from __future__ import annotations

import os
import threading
import time
from collections import deque
from typing import Callable, Deque, Dict, Optional, Protocol


class RateLimitExceeded(RuntimeError):
    """Raised by a limiter when a key has used up its window."""


class RateLimiter(Protocol):
    def check(self, key: str) -> None:
        """Record one call for `key`; raise RateLimitExceeded when over the limit."""
        ...

    def reset(self) -> None:
        ...


def _limits_from_env() -> tuple[int, int]:
    """Read limits at call time so tests/env overrides take effect."""
    max_reqs = int(os.getenv("RL_MAX_REQS", "60"))
    window_s = int(os.getenv("RL_WINDOW_SECONDS", "60"))
    return max_reqs, window_s


class SlidingWindowLimiter:
    """
    Keeps one timestamp deque per key. Limits are either fixed at
    construction or re-read from RL_MAX_REQS / RL_WINDOW_SECONDS on every
    check. Swap this object for a shared-store limiter to rate limit
    across processes; callers only depend on `check` / `reset`.
    """

    def __init__(
        self,
        max_reqs: Optional[int] = None,
        window_s: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._max_reqs = max_reqs
        self._window_s = window_s
        self._clock = clock
        self._store: Dict[str, Deque[float]] = {}
        self._lock = threading.Lock()

    def _limits(self) -> tuple[int, float]:
        env_max, env_window = _limits_from_env()
        max_reqs = self._max_reqs if self._max_reqs is not None else env_max
        window_s = self._window_s if self._window_s is not None else env_window
        return max_reqs, window_s

    def check(self, key: str) -> None:
        now = self._clock()
        max_reqs, window_s = self._limits()

        with self._lock:
            dq = self._store.setdefault(key, deque())

            # Drop timestamps outside the window
            cutoff = now - window_s
            while dq and dq[0] <= cutoff:
                dq.popleft()

            if len(dq) >= max_reqs:
                raise RateLimitExceeded(f"Rate limit exceeded for {key!r}")

            dq.append(now)

    def remaining(self, key: str) -> int:
        now = self._clock()
        max_reqs, window_s = self._limits()
        with self._lock:
            dq = self._store.get(key)
            if not dq:
                return max_reqs
            live = sum(1 for ts in dq if ts > now - window_s)
            return max(0, max_reqs - live)

    def reset(self) -> None:
        """For tests: clear in-memory counters."""
        with self._lock:
            self._store.clear()
