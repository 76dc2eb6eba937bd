from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Mapping
from typing import Protocol

logger = logging.getLogger("travelai.metrics")


class Metrics(Protocol):
    def increment(self, name: str, tags: Mapping[str, str] | None = None) -> None: ...  # pragma: no cover - interface only


class NoopMetrics:
    def increment(self, name: str, tags: Mapping[str, str] | None = None) -> None:  # pragma: no cover - noop
        return


class LoggingMetrics:
    """Log every increment and keep per-process totals keyed by metric name."""

    def __init__(self) -> None:
        self.counts: Counter[str] = Counter()

    def increment(self, name: str, tags: Mapping[str, str] | None = None) -> None:
        ordered = dict(sorted((tags or {}).items()))
        self.counts[name] += 1
        # Structured-ish log for easy grep/ingest later
        logger.info("metric name=%s tags=%s", name, ordered)


__all__ = ["Metrics", "NoopMetrics", "LoggingMetrics"]
