"""Domain error taxonomy + JSON handler registration.

Every failure leaves the API as ``{"error": <stable code>, "message": ...}``.
Unhandled exceptions are mapped to ``unexpected`` with an incident id; the raw
exception text is only included when ``EXPOSE_ERROR_DETAIL`` is set
(non-production).
"""
from __future__ import annotations

import logging
import uuid
from typing import Any

from flask import current_app, request
from werkzeug.exceptions import HTTPException
from werkzeug.wrappers.response import Response

from .http_errors import error_response, rate_limit_headers

logger = logging.getLogger("travelai.errors")


class DomainError(Exception):
    status = 500
    code = "unexpected"
    default_message = "Unexpected server error"

    def __init__(self, message: str | None = None, **extra: Any):
        self.message = message or self.default_message
        self.extra = extra
        super().__init__(self.message)

    def headers(self) -> dict[str, str]:
        return {}

    def to_response(self) -> Response:
        resp = error_response(self.status, self.code, self.message, **self.extra)
        for k, v in self.headers().items():
            resp.headers[k] = v
        return resp


class Unauthorized(DomainError):
    status = 401
    code = "unauthorized"
    default_message = "Unauthorized"


class MissingTenant(DomainError):
    # 400 rather than 401: a mistyped key is indistinguishable from a missing one here
    status = 400
    code = "missing_tenant"
    default_message = "Missing tenantId"


class InvalidPayload(DomainError):
    status = 400
    code = "invalid_payload"
    default_message = "Invalid payload"

    def __init__(self, invalid_params: list[dict[str, str]] | None = None, message: str | None = None, **extra: Any):
        self.invalid_params = list(invalid_params or [])
        super().__init__(message, invalid_params=self.invalid_params or None, **extra)


class RateLimited(DomainError):
    status = 429
    code = "rate_limited"
    default_message = "Rate limit exceeded"

    def __init__(self, *, limit: int, reset_at: int, retry_after: int, operation_class: str | None = None, message: str | None = None):
        self.limit = limit
        self.reset_at = reset_at
        self.retry_after = max(1, int(retry_after))
        super().__init__(
            message or f"Too many requests. Limit: {limit} per window.",
            retry_after=self.retry_after,
            reset_at=reset_at,
            operation_class=operation_class,
        )

    def headers(self) -> dict[str, str]:
        return rate_limit_headers(self.limit, 0, self.reset_at, self.retry_after)


class FeatureDisabled(DomainError):
    status = 404
    code = "feature_disabled"
    default_message = "Settings unavailable"


class NotFound(DomainError):
    status = 404
    code = "not_found"
    default_message = "Not found"


class Forbidden(DomainError):
    status = 403
    code = "forbidden"
    default_message = "Forbidden"


class Unexpected(DomainError):
    status = 500
    code = "unexpected"
    default_message = "Unexpected server error"


_HTTP_CODES: dict[int, str] = {
    400: "invalid_payload",
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
    415: "unsupported_media_type",
}


def register_error_handlers(app: Any) -> None:

    @app.errorhandler(DomainError)
    def _h_domain(err: DomainError) -> Response:
        if err.status >= 500:
            logger.error("domain error %s path=%s: %s", err.code, request.path, err.message)
        else:
            logger.info("request rejected code=%s status=%s path=%s", err.code, err.status, request.path)
        return err.to_response()

    @app.errorhandler(HTTPException)
    def _h_http(ex: HTTPException) -> Response:
        status = ex.code or 500
        if status >= 500:
            return error_response(500, "unexpected", "Unexpected server error")
        code = _HTTP_CODES.get(status, "bad_request")
        return error_response(status, code, ex.description or code)

    @app.errorhandler(Exception)
    def _h_exception(ex: Exception) -> Response:
        incident_id = str(uuid.uuid4())
        logger.exception("Unhandled exception incident_id=%s path=%s", incident_id, request.path)
        detail = repr(ex) if current_app.config.get("EXPOSE_ERROR_DETAIL") else None
        return error_response(500, "unexpected", "Unexpected server error", incident_id=incident_id, detail=detail)


__all__ = [
    "DomainError",
    "Unauthorized",
    "MissingTenant",
    "InvalidPayload",
    "RateLimited",
    "FeatureDisabled",
    "NotFound",
    "Forbidden",
    "Unexpected",
    "register_error_handlers",
]
