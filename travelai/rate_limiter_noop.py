"""Noop backend – always allows. Development only."""

from __future__ import annotations

import time
from collections.abc import Callable

from .rate_limiter import RateLimitDecision, now_ms


class NoopRateLimiter:
    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock

    def check(self, key: str, limit: int, window_ms: int) -> RateLimitDecision:  # noqa: D401
        return RateLimitDecision(True, limit, limit, now_ms(self._clock) + window_ms)

    def peek(self, key: str, limit: int, window_ms: int) -> RateLimitDecision:  # noqa: D401
        return self.check(key, limit, window_ms)


__all__ = ["NoopRateLimiter"]
