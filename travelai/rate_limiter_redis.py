"""Fixed-window limiter using Redis INCR + PEXPIRE (set PEXPIRE when INCR==1 or no TTL yet).
The window's reset time is derived from the key's PTTL. Connection errors surface as
``RateLimitBackendError``."""
from __future__ import annotations

import time
from collections.abc import Callable

import redis

from .rate_limiter import RateLimitBackendError, RateLimitDecision, now_ms


class RedisRateLimiter:
    def __init__(
        self,
        url: str,
        prefix: str,
        *,
        client: redis.Redis | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._client = client if client is not None else redis.Redis.from_url(url, decode_responses=False)
        self._prefix = prefix
        self._clock = clock

    def _key(self, logical_key: str) -> str:
        return f"{self._prefix}{logical_key}"

    def check(self, key: str, limit: int, window_ms: int) -> RateLimitDecision:
        rk = self._key(key)
        try:
            pipe = self._client.pipeline(transaction=True)
            pipe.incr(rk, 1)
            pipe.pttl(rk)
            results = pipe.execute()
            count = int(results[0])
            ttl = int(results[1])
            if count == 1 or ttl < 0:
                # first increment or no ttl yet -> start the window
                self._client.pexpire(rk, window_ms)
                ttl = window_ms
        except redis.RedisError as e:
            raise RateLimitBackendError(str(e)) from e
        reset_at = now_ms(self._clock) + ttl
        return RateLimitDecision(count <= limit, limit, max(0, limit - count), reset_at)

    def peek(self, key: str, limit: int, window_ms: int) -> RateLimitDecision:
        rk = self._key(key)
        try:
            pipe = self._client.pipeline(transaction=True)
            pipe.get(rk)
            pipe.pttl(rk)
            raw, ttl = pipe.execute()
        except redis.RedisError as e:
            raise RateLimitBackendError(str(e)) from e
        now = now_ms(self._clock)
        if raw is None or int(ttl) < 0:
            return RateLimitDecision(True, limit, limit, now + window_ms)
        count = int(raw)
        return RateLimitDecision(count < limit, limit, max(0, limit - count), now + int(ttl))


__all__ = ["RedisRateLimiter"]
