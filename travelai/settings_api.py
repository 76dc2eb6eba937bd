from __future__ import annotations

import json
from typing import Any

from flask import Blueprint, jsonify, request
from werkzeug.wrappers.response import Response

from .errors import InvalidPayload
from .services import current_identity, get_services

bp = Blueprint("settings_api", __name__, url_prefix="/api/v1/settings")


def _json_body() -> Any:
    if not request.data:
        return None
    body = request.get_json(silent=True)
    if body is None:
        raise InvalidPayload(message="Invalid JSON payload")
    return body


@bp.get("")
def get_settings() -> Response:
    identity = current_identity()
    return jsonify({"data": get_services().settings.get(identity)})


@bp.put("")
def replace_settings() -> Response:
    identity = current_identity()
    saved = get_services().settings.replace(identity, _json_body())
    return jsonify({"data": saved})


@bp.patch("")
def patch_settings() -> Response:
    identity = current_identity()
    saved = get_services().settings.patch(identity, _json_body())
    return jsonify({"data": saved})


@bp.post("/delete")
def schedule_deletion() -> tuple[Response, int]:
    identity = current_identity()
    ticket = get_services().settings.schedule_deletion(identity)
    body = ticket.to_dict()
    body["message"] = "Account deletion scheduled. Location data will be purged once the window lapses."
    return jsonify(body), 202


@bp.post("/export")
def create_export() -> tuple[Response, int]:
    identity = current_identity()
    ticket = get_services().settings.create_export(identity)
    body = ticket.to_dict()
    body["message"] = "Export ready. We have emailed you a download link."
    return jsonify(body), 201


@bp.get("/export/<token>")
def download_export(token: str) -> Response:
    identity = current_identity()
    download = get_services().settings.fetch_export(identity, token)
    resp = Response(json.dumps(download.archive, indent=2), mimetype="application/json")
    resp.headers["Content-Disposition"] = f'attachment; filename="{download.filename}"'
    resp.headers["Cache-Control"] = "no-store"
    return resp


__all__ = ["bp"]
