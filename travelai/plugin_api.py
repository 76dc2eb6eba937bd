"""Plugin API: tenant-scoped event CRUD for third-party widgets and SDKs.

Every call resolves the tenant first (early-returning ``missing_tenant``) and
then spends one unit of the tenant's ``requests`` quota. Allowed responses carry
the current ``X-RateLimit-*`` headers.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from flask import Blueprint, g, jsonify, request
from werkzeug.wrappers.response import Response

from .errors import InvalidPayload, Unauthorized
from .events import normalize_submission
from .http_errors import rate_limit_headers
from .rate_limiter import RateLimitDecision
from .services import get_services
from .tenant import TenantResolution

bp = Blueprint("plugin_api", __name__, url_prefix="/api/plugin")

REQUESTS = "requests"


def _resolve(context: str) -> TenantResolution:
    resolution = get_services().tenants.resolve(request, context)
    if resolution.ok:
        g.tenant_id = resolution.tenant_id
    return resolution


def _admit(tenant_id: str, operation_class: str = REQUESTS) -> RateLimitDecision:
    return get_services().rate_limiter.enforce(tenant_id, operation_class)


def _with_limits(resp: Response, decision: RateLimitDecision) -> Response:
    for k, v in rate_limit_headers(decision.limit, decision.remaining, decision.reset_at).items():
        resp.headers[k] = v
    return resp


def _body(resolution: TenantResolution) -> dict[str, Any]:
    if resolution.body is not None:
        return resolution.body
    if request.data:
        raise InvalidPayload(message="Request body must be valid JSON")
    return {}


def _int_arg(name: str, default: int | None) -> int | None:
    raw = request.args.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise InvalidPayload([{"name": name, "reason": "must be an integer"}]) from None


@bp.route("/resolve-tenant", methods=["GET", "POST"])
def resolve_tenant() -> Response:
    resolution = _resolve("/api/plugin/resolve-tenant")
    if not resolution.ok:
        return resolution.error.to_response()  # type: ignore[union-attr]
    return jsonify({"tenantId": resolution.tenant_id, "sources": resolution.sources.to_dict()})


@bp.get("/fetch-events")
def fetch_events() -> Response:
    resolution = _resolve("/api/plugin/fetch-events")
    if not resolution.ok:
        return resolution.error.to_response()  # type: ignore[union-attr]
    tenant_id = resolution.tenant_id
    decision = _admit(tenant_id)
    limit = _int_arg("limit", 50)
    since_ms = _int_arg("since", None)
    tags_raw = request.args.get("tags")
    tags = [t.strip() for t in tags_raw.split(",") if t.strip()] if tags_raw else []
    created_by = request.args.get("createdBy") or None
    events = get_services().events.list_events(
        tenant_id, limit=limit, tags=tags, created_by=created_by, since_ms=since_ms
    )
    resp = jsonify(
        {
            "events": events,
            "meta": {
                "total": len(events),
                "limit": limit,
                "tags": tags,
                "sortBy": "newest",
                "tenantId": tenant_id,
            },
        }
    )
    return _with_limits(resp, decision)


@bp.post("/submit-event")
def submit_event() -> Response:
    resolution = _resolve("/api/plugin/submit-event")
    if not resolution.ok:
        return resolution.error.to_response()  # type: ignore[union-attr]
    body = _body(resolution)
    decision = _admit(resolution.tenant_id)
    event = normalize_submission(body)
    g.user_id = event.user_id
    created = get_services().events.create(resolution.tenant_id, event)
    resp = jsonify({"success": True, **created, "tenantId": resolution.tenant_id})
    return _with_limits(resp, decision)


@bp.route("/update-event", methods=["PUT", "PATCH"])
def update_event() -> Response:
    resolution = _resolve("/api/plugin/update-event")
    if not resolution.ok:
        return resolution.error.to_response()  # type: ignore[union-attr]
    body = _body(resolution)
    event_id = body.get("eventId")
    if not isinstance(event_id, str) or not event_id.strip():
        raise InvalidPayload([{"name": "eventId", "reason": "required"}], "eventId is required")
    user_id = body.get("userId")
    if not isinstance(user_id, str) or not user_id.strip():
        raise Unauthorized("userId is required")
    updates = body.get("updates")
    if not isinstance(updates, Mapping):
        raise InvalidPayload([{"name": "updates", "reason": "required"}], "updates payload is required")
    g.user_id = user_id
    decision = _admit(resolution.tenant_id)
    event = get_services().events.update(resolution.tenant_id, event_id.strip(), updates)
    resp = jsonify({"success": True, "tenantId": resolution.tenant_id, "event": event})
    return _with_limits(resp, decision)


@bp.delete("/delete-event")
def delete_event() -> Response:
    resolution = _resolve("/api/plugin/delete-event")
    if not resolution.ok:
        return resolution.error.to_response()  # type: ignore[union-attr]
    body = resolution.body or {}
    event_id = request.args.get("eventId") or body.get("eventId")
    user_id = request.args.get("userId") or body.get("userId")
    if not event_id or not user_id:
        raise InvalidPayload(
            [{"name": n, "reason": "required"} for n, v in (("eventId", event_id), ("userId", user_id)) if not v],
            "eventId and userId are required",
        )
    g.user_id = user_id
    decision = _admit(resolution.tenant_id)
    get_services().events.delete(resolution.tenant_id, str(event_id))
    resp = jsonify({"success": True, "tenantId": resolution.tenant_id})
    return _with_limits(resp, decision)


@bp.get("/rate-limit-status")
def rate_limit_status() -> Response:
    resolution = _resolve("/api/plugin/rate-limit-status")
    if not resolution.ok:
        return resolution.error.to_response()  # type: ignore[union-attr]
    limits = get_services().rate_limiter.status(resolution.tenant_id)
    return jsonify({"tenantId": resolution.tenant_id, "limits": limits})


__all__ = ["bp"]
