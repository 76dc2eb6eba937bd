"""In-process fixed-window rate limiter.
Single-process only; each worker keeps its own windows."""
from __future__ import annotations

import threading
import time
from collections.abc import Callable

from .rate_limiter import RateLimitDecision, now_ms


class MemoryRateLimiter:
    def __init__(self, *, clock: Callable[[], float] = time.time, sweep_every: int = 1000) -> None:
        # key -> [count, reset_at_ms]
        self._windows: dict[str, list[int]] = {}
        self._lock = threading.Lock()
        self._clock = clock
        self._sweep_every = sweep_every
        self._calls = 0

    def check(self, key: str, limit: int, window_ms: int) -> RateLimitDecision:
        with self._lock:
            now = now_ms(self._clock)
            self._calls += 1
            if self._calls % self._sweep_every == 0:
                self._sweep(now)
            cur = self._windows.get(key)
            if cur is None or now >= cur[1]:
                cur = [1, now + window_ms]
                self._windows[key] = cur
                return RateLimitDecision(True, limit, max(0, limit - 1), cur[1])
            # same window
            cur[0] += 1
            count = cur[0]
            return RateLimitDecision(count <= limit, limit, max(0, limit - count), cur[1])

    def peek(self, key: str, limit: int, window_ms: int) -> RateLimitDecision:
        with self._lock:
            now = now_ms(self._clock)
            cur = self._windows.get(key)
            if cur is None or now >= cur[1]:
                return RateLimitDecision(True, limit, limit, now + window_ms)
            count, reset_at = cur
            return RateLimitDecision(count < limit, limit, max(0, limit - count), reset_at)

    def _sweep(self, now: int) -> None:
        expired = [k for k, (_c, reset_at) in self._windows.items() if now >= reset_at]
        for k in expired:
            del self._windows[k]


__all__ = ["MemoryRateLimiter"]
