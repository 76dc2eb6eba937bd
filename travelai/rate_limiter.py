"""Fixed-window rate limiting per (tenant, operation class).

Backends implement the ``RateLimiter`` protocol over an opaque key and return a
``RateLimitDecision``; ``TenantRateLimiter`` maps tenants and operation classes
to keys and limits via ``LimitRegistry``. The backend is picked by
``RATE_LIMIT_BACKEND`` (memory | redis | noop) in ``build_rate_limiter``.
"""
from __future__ import annotations

import logging
import math
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from .errors import RateLimited, Unexpected
from .limit_registry import LimitRegistry
from .metrics import Metrics, NoopMetrics

logger = logging.getLogger("travelai.rate_limit")


class RateLimitBackendError(Exception):
    """Raised by a backend when its storage cannot be reached."""


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_at: int  # epoch ms

    def retry_after(self, now_ms: int) -> int:
        """Whole seconds until the window resets, never below 1."""
        return max(1, math.ceil((self.reset_at - now_ms) / 1000))

    def to_dict(self) -> dict[str, int | bool]:
        return {
            "allowed": self.allowed,
            "limit": self.limit,
            "resetAt": self.reset_at,
            "remaining": self.remaining,
        }


def now_ms(clock: Callable[[], float]) -> int:
    return int(clock() * 1000)


@runtime_checkable
class RateLimiter(Protocol):
    def check(self, key: str, limit: int, window_ms: int) -> RateLimitDecision: ...  # pragma: no cover
    def peek(self, key: str, limit: int, window_ms: int) -> RateLimitDecision: ...  # pragma: no cover


class TenantRateLimiter:
    def __init__(
        self,
        backend: RateLimiter,
        registry: LimitRegistry,
        *,
        metrics: Metrics | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.backend = backend
        self.registry = registry
        self.metrics = metrics or NoopMetrics()
        self._clock = clock

    @staticmethod
    def key(tenant_id: str, operation_class: str) -> str:
        return f"{tenant_id}:{operation_class}"

    def _limit(self, tenant_id: str, operation_class: str) -> tuple[int, int]:
        ld, _src = self.registry.get_limit(tenant_id, operation_class)
        return ld["quota"], ld["per_seconds"] * 1000

    def check_rate_limit(self, tenant_id: str, operation_class: str = "requests") -> RateLimitDecision:
        limit, window_ms = self._limit(tenant_id, operation_class)
        try:
            decision = self.backend.check(self.key(tenant_id, operation_class), limit, window_ms)
        except RateLimitBackendError as e:
            logger.error("rate limit backend failure tenant=%s class=%s: %s", tenant_id, operation_class, e)
            raise Unexpected("Rate limit storage unavailable") from e
        self.metrics.increment(
            "rate_limit.hit",
            {"class": operation_class, "outcome": "allow" if decision.allowed else "block"},
        )
        return decision

    def enforce(self, tenant_id: str, operation_class: str = "requests") -> RateLimitDecision:
        decision = self.check_rate_limit(tenant_id, operation_class)
        if not decision.allowed:
            logger.info("rate limited tenant=%s class=%s limit=%s", tenant_id, operation_class, decision.limit)
            raise RateLimited(
                limit=decision.limit,
                reset_at=decision.reset_at,
                retry_after=decision.retry_after(now_ms(self._clock)),
                operation_class=operation_class,
            )
        return decision

    def status(self, tenant_id: str) -> dict[str, dict[str, int | bool]]:
        """Current window for every operation class, without consuming quota."""
        out: dict[str, dict[str, int | bool]] = {}
        for name in self.registry.operation_classes():
            limit, window_ms = self._limit(tenant_id, name)
            try:
                out[name] = self.backend.peek(self.key(tenant_id, name), limit, window_ms).to_dict()
            except RateLimitBackendError as e:
                logger.error("rate limit backend failure during status tenant=%s: %s", tenant_id, e)
                raise Unexpected("Rate limit storage unavailable") from e
        return out


def build_rate_limiter(
    cfg,
    *,
    metrics: Metrics | None = None,
    clock: Callable[[], float] = time.time,
    redis_client=None,
) -> TenantRateLimiter:
    backend: RateLimiter
    name = cfg.rate_limit_backend
    if name == "memory":
        from .rate_limiter_memory import MemoryRateLimiter

        backend = MemoryRateLimiter(clock=clock)
    elif name == "redis":
        from .rate_limiter_redis import RedisRateLimiter

        backend = RedisRateLimiter(cfg.redis_url, cfg.rate_limit_prefix, client=redis_client, clock=clock)
    elif name == "noop":
        from .rate_limiter_noop import NoopRateLimiter

        if cfg.is_production:
            logger.warning("RATE_LIMIT_BACKEND=noop in production; requests are not limited")
        backend = NoopRateLimiter(clock=clock)
    else:
        raise ValueError(f"unknown RATE_LIMIT_BACKEND {name!r}")
    registry = LimitRegistry.from_config(cfg.rate_limits_json)
    return TenantRateLimiter(backend, registry, metrics=metrics, clock=clock)


__all__ = [
    "RateLimiter",
    "RateLimitDecision",
    "RateLimitBackendError",
    "TenantRateLimiter",
    "build_rate_limiter",
]
