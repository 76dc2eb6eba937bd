"""Admin toggle for the settings feature flags.

Any verified caller may read the flags; changing one requires the ``admin`` scope.
"""

from __future__ import annotations

from collections.abc import Mapping

from flask import Blueprint, jsonify, request
from werkzeug.wrappers.response import Response

from .errors import Forbidden, InvalidPayload
from .feature_flags import FLAG_KEYS
from .services import current_identity, get_services

bp = Blueprint("admin_flags_api", __name__, url_prefix="/api/admin")

ADMIN_SCOPE = "admin"


@bp.get("/feature-flags")
def list_flags() -> Response:
    current_identity()
    flags = get_services().flags
    flags.ensure_defaults()
    return jsonify({"data": flags.snapshot(), "flags": flags.list_flags()})


@bp.patch("/feature-flags")
def update_flag() -> Response:
    identity = current_identity()
    if not identity.has_scope(ADMIN_SCOPE):
        raise Forbidden("Admin scope required", required_scope=ADMIN_SCOPE)
    body = request.get_json(silent=True)
    if not isinstance(body, Mapping):
        raise InvalidPayload(message="Invalid request payload")
    problems: list[dict[str, str]] = []
    key = body.get("key")
    if key not in FLAG_KEYS:
        problems.append({"name": "key", "reason": "unknown"})
    enabled = body.get("enabled")
    if not isinstance(enabled, bool):
        problems.append({"name": "enabled", "reason": "must be a boolean"})
    payload = body.get("payload")
    if payload is not None and not isinstance(payload, dict):
        problems.append({"name": "payload", "reason": "must be an object or null"})
    if problems:
        raise InvalidPayload(problems, "Invalid request payload")
    flags = get_services().flags
    flags.ensure_defaults()
    flags.set_flag(key, enabled, payload)
    return jsonify({"data": flags.snapshot()})


__all__ = ["bp"]
