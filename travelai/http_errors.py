"""Shared JSON error envelope helpers for consistent error responses."""
from __future__ import annotations

from flask import g, jsonify
from werkzeug.wrappers.response import Response


def error_response(status: int, code: str, message: str, **extra: object) -> Response:
    """Build ``{"error": code, "message": message, ...extra}`` with the given status.

    ``None`` values in ``extra`` are dropped. The request id (when known) is
    echoed both in the body and the ``X-Request-Id`` header.
    """
    payload: dict[str, object] = {"error": code, "message": message}
    for k, v in extra.items():
        if v is not None:
            payload[k] = v
    rid = getattr(g, "request_id", None)
    if rid:
        payload["request_id"] = rid
    resp = jsonify(payload)
    resp.status_code = status
    if rid and "X-Request-Id" not in resp.headers:
        resp.headers["X-Request-Id"] = rid
    return resp


def rate_limit_headers(limit: int, remaining: int, reset_at_ms: int, retry_after: int | None = None) -> dict[str, str]:
    headers = {
        "X-RateLimit-Limit": str(int(limit)),
        "X-RateLimit-Remaining": str(max(0, int(remaining))),
        "X-RateLimit-Reset": str(int(reset_at_ms)),
    }
    if retry_after is not None:
        headers["Retry-After"] = str(max(1, int(retry_after)))
    return headers


__all__ = ["error_response", "rate_limit_headers"]
