"""Logging configuration.

Attaches request context (request id + path) to every record emitted while a
request is active so tenant traces and flag-store warnings can be correlated.
"""

from __future__ import annotations

import logging

from flask import g, has_request_context, request

_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(request_id)s %(path)s] %(message)s"


class RequestContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:  # noqa: D401
        try:
            rid = getattr(g, "request_id", "-") if has_request_context() else "-"
            path = request.path if has_request_context() else "-"
        except RuntimeError:
            rid = "-"
            path = "-"
        record.request_id = rid
        record.path = path
        return True


def install_logging(level: str = "INFO") -> logging.Logger:
    root = logging.getLogger("travelai")
    root.setLevel(level.upper())
    # Avoid duplicate attachment if the factory runs more than once (tests)
    if not any(isinstance(f, RequestContextFilter) for h in root.handlers for f in h.filters):
        h = logging.StreamHandler()
        h.addFilter(RequestContextFilter())
        h.setFormatter(logging.Formatter(_FORMAT))
        root.addHandler(h)
    return root


__all__ = ["RequestContextFilter", "install_logging"]
