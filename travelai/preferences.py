"""User preference document: defaults and validation.

Validation is strict: unknown keys are rejected and every problem is reported
as ``{"name": <dotted path>, "reason": <message>}`` so clients can map errors
back to form fields. ``validate_preferences`` checks a whole document;
``validate_partial`` checks only the keys present (PATCH bodies).
"""
from __future__ import annotations

import math
import re
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from typing import Any
from urllib.parse import urlparse

from .errors import InvalidPayload

ISO_TIME_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d(:[0-5]\d)?(\.\d+)?(Z|[+-][01]\d:[0-5]\d)?$")
ISO_DATETIME_RE = re.compile(
    r"^\d{4}-\d{2}-\d{2}T([01]\d|2[0-3]):[0-5]\d:[0-5]\d(\.\d+)?(Z|[+-][01]\d:[0-5]\d)$"
)

SPONTANEITY = ("low", "medium", "high")
MATCH_STRICTNESS = ("strict", "flexible")
LOCATION_SHARING = ("off", "nearby", "live")
TRANSPORT = ("walking", "transit", "rideshare", "driving", "bike")
WHO_CAN_INVITE = ("anyone", "contacts", "followers", "off")
PROFILE_VISIBILITY = ("full", "anonymous", "pseudonym")
SAFETY_MODE = ("off", "standard", "high")
BUDGET_TIERS = ("free", "$", "$$", "$$$")
AI_PERSONA = ("conservative", "friendly", "adventurous", "minimal")

RADIUS_MIN_KM = 1
RADIUS_MAX_KM = 50

# Changes to these are recorded in the consent log
CONSENT_FIELDS = (
    "locationSharing",
    "whoCanInvite",
    "profileVisibility",
    "analyticsOptIn",
    "showReasoning",
    "autoJoin",
)

Problems = list[dict[str, str]]


def iso_now(now: datetime | None = None) -> str:
    dt = (now or datetime.now(UTC)).astimezone(UTC)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def default_preferences(user_id: str, *, display_name: str | None = None, photo_url: str | None = None,
                        now: datetime | None = None) -> dict[str, Any]:
    prefs: dict[str, Any] = {
        "userId": user_id,
        "interests": [],
        "spontaneity": "medium",
        "matchStrictness": "flexible",
        "autoJoin": False,
        "locationSharing": "off",
        "radiusKm": 5,
        "transportPreference": "walking",
        "defaultNavProvider": "mapbox",
        "offlineMaps": False,
        "whoCanInvite": "contacts",
        "profileVisibility": "pseudonym",
        "safetyMode": "standard",
        "accessibilityNeeds": [],
        "budget": "$",
        "timeAvailability": "now",
        "aiPersona": "friendly",
        "showReasoning": False,
        "analyticsOptIn": False,
        "dndSchedule": [],
        "updatedAt": iso_now(now),
    }
    if display_name:
        prefs["displayName"] = display_name
    if photo_url:
        prefs["photoUrl"] = photo_url
    return prefs


# --- field checkers: return a reason string or None ---

def _is_number(v: object) -> bool:
    return isinstance(v, int | float) and not isinstance(v, bool) and math.isfinite(v)


def _is_int(v: object) -> bool:
    if isinstance(v, bool):
        return False
    if isinstance(v, int):
        return True
    return isinstance(v, float) and v.is_integer()


def _non_empty_string(v: object) -> str | None:
    if not isinstance(v, str):
        return "Expected string"
    if not v:
        return "String must contain at least 1 character(s)"
    return None


def _one_of(choices: tuple[str, ...]) -> Callable[[object], str | None]:
    def check(v: object) -> str | None:
        if v not in choices:
            return "Expected one of: " + ", ".join(repr(c) for c in choices)
        return None

    return check


def _boolean(v: object) -> str | None:
    return None if isinstance(v, bool) else "Expected boolean"


def _url(v: object) -> str | None:
    if not isinstance(v, str):
        return "Expected string"
    parsed = urlparse(v)
    if not parsed.scheme or not parsed.netloc:
        return "Invalid url"
    return None


def _time(v: object) -> str | None:
    if not isinstance(v, str) or not ISO_TIME_RE.match(v):
        return "Time values must be ISO-8601 compliant"
    return None


def _radius(v: object) -> str | None:
    if not _is_number(v):
        return "radiusKm must be a number"
    if v < RADIUS_MIN_KM:  # type: ignore[operator]
        return "radiusKm must be at least 1"
    if v > RADIUS_MAX_KM:  # type: ignore[operator]
        return "radiusKm must be at most 50"
    return None


def _string_list(name: str, v: object, problems: Problems) -> None:
    if not isinstance(v, list):
        problems.append({"name": name, "reason": "Expected array"})
        return
    for i, item in enumerate(v):
        reason = _non_empty_string(item)
        if reason:
            problems.append({"name": f"{name}.{i}", "reason": reason})


def _budget(name: str, v: object, problems: Problems) -> None:
    if isinstance(v, str):
        if v not in BUDGET_TIERS:
            problems.append({"name": name, "reason": _one_of(BUDGET_TIERS)(v) or ""})
        return
    if not isinstance(v, dict):
        problems.append({"name": name, "reason": "Expected a budget tier or {maxCents}"})
        return
    for extra in sorted(set(v) - {"maxCents"}):
        problems.append({"name": f"{name}.{extra}", "reason": "Unrecognized key"})
    if "maxCents" not in v:
        problems.append({"name": f"{name}.maxCents", "reason": "Required"})
        return
    cents = v["maxCents"]
    if not _is_number(cents):
        problems.append({"name": f"{name}.maxCents", "reason": "maxCents must be a number"})
    elif not _is_int(cents):
        problems.append({"name": f"{name}.maxCents", "reason": "maxCents must be an integer"})
    elif cents < 0:
        problems.append({"name": f"{name}.maxCents", "reason": "maxCents must be positive"})


def _time_availability(name: str, v: object, problems: Problems) -> None:
    if v == "now":
        return
    if not isinstance(v, dict):
        problems.append({"name": name, "reason": "Expected \"now\" or {from, to}"})
        return
    for extra in sorted(set(v) - {"from", "to"}):
        problems.append({"name": f"{name}.{extra}", "reason": "Unrecognized key"})
    if v.get("from") is None and v.get("to") is None:
        problems.append({"name": f"{name}.from", "reason": "At least one of 'from' or 'to' must be provided"})
        return
    for part in ("from", "to"):
        if v.get(part) is not None:
            reason = _time(v[part])
            if reason:
                problems.append({"name": f"{name}.{part}", "reason": reason})


def _dnd_schedule(name: str, v: object, problems: Problems) -> None:
    if not isinstance(v, list):
        problems.append({"name": name, "reason": "Expected array"})
        return
    for i, entry in enumerate(v):
        path = f"{name}.{i}"
        if not isinstance(entry, dict):
            problems.append({"name": path, "reason": "Expected object"})
            continue
        for extra in sorted(set(entry) - {"day", "from", "to"}):
            problems.append({"name": f"{path}.{extra}", "reason": "Unrecognized key"})
        day = entry.get("day")
        if day is None:
            problems.append({"name": f"{path}.day", "reason": "Required"})
        elif not _is_number(day):
            problems.append({"name": f"{path}.day", "reason": "day must be a number"})
        elif not _is_int(day):
            problems.append({"name": f"{path}.day", "reason": "day must be an integer"})
        elif not 0 <= day <= 6:
            problems.append({"name": f"{path}.day", "reason": "day must be between 0 and 6"})
        for part in ("from", "to"):
            if part not in entry:
                problems.append({"name": f"{path}.{part}", "reason": "Required"})
                continue
            reason = _time(entry[part])
            if reason:
                problems.append({"name": f"{path}.{part}", "reason": reason})


def _updated_at(v: object) -> str | None:
    if not isinstance(v, str) or not ISO_DATETIME_RE.match(v):
        return "Invalid datetime"
    return None


def _user_id(v: object) -> str | None:
    if not isinstance(v, str):
        return "Expected string"
    return None if v else "userId is required"


_SIMPLE: dict[str, Callable[[object], str | None]] = {
    "userId": _user_id,
    "displayName": _non_empty_string,
    "photoUrl": _url,
    "spontaneity": _one_of(SPONTANEITY),
    "matchStrictness": _one_of(MATCH_STRICTNESS),
    "autoJoin": _boolean,
    "locationSharing": _one_of(LOCATION_SHARING),
    "radiusKm": _radius,
    "transportPreference": _one_of(TRANSPORT),
    "defaultNavProvider": _non_empty_string,
    "offlineMaps": _boolean,
    "whoCanInvite": _one_of(WHO_CAN_INVITE),
    "profileVisibility": _one_of(PROFILE_VISIBILITY),
    "safetyMode": _one_of(SAFETY_MODE),
    "aiPersona": _one_of(AI_PERSONA),
    "showReasoning": _boolean,
    "analyticsOptIn": _boolean,
    "updatedAt": _updated_at,
}

_COMPOUND: dict[str, Callable[[str, object, Problems], None]] = {
    "interests": _string_list,
    "accessibilityNeeds": _string_list,
    "budget": _budget,
    "timeAvailability": _time_availability,
    "dndSchedule": _dnd_schedule,
}

FIELDS = frozenset(_SIMPLE) | frozenset(_COMPOUND)

REQUIRED = (
    "userId",
    "spontaneity",
    "matchStrictness",
    "autoJoin",
    "locationSharing",
    "radiusKm",
    "transportPreference",
    "whoCanInvite",
    "profileVisibility",
    "safetyMode",
    "budget",
    "timeAvailability",
    "aiPersona",
    "showReasoning",
    "analyticsOptIn",
    "updatedAt",
)

# Filled in when absent from a full document
_LIST_DEFAULTS = ("interests", "accessibilityNeeds")


def _check_fields(doc: Mapping[str, Any], problems: Problems) -> None:
    for key in doc:
        if key not in FIELDS:
            problems.append({"name": str(key), "reason": "Unrecognized key"})
    for key, value in doc.items():
        if key in _SIMPLE:
            reason = _SIMPLE[key](value)
            if reason:
                problems.append({"name": key, "reason": reason})
        elif key in _COMPOUND:
            _COMPOUND[key](key, value, problems)


def validate_preferences(payload: object) -> dict[str, Any]:
    """Validate a whole preference document; raises ``InvalidPayload``."""
    if not isinstance(payload, Mapping):
        raise InvalidPayload([{"name": "_", "reason": "Expected object"}], "Invalid preferences")
    problems: Problems = []
    for key in REQUIRED:
        if key not in payload:
            problems.append({"name": key, "reason": "Required"})
    _check_fields(payload, problems)
    if problems:
        raise InvalidPayload(problems, "Invalid preferences")
    doc = dict(payload)
    for key in _LIST_DEFAULTS:
        doc.setdefault(key, [])
    return doc


def validate_partial(partial: object) -> dict[str, Any]:
    """Validate only the keys present in ``partial``."""
    if not isinstance(partial, Mapping):
        raise InvalidPayload([{"name": "_", "reason": "Expected object"}], "Invalid preferences")
    problems: Problems = []
    _check_fields(partial, problems)
    if problems:
        raise InvalidPayload(problems, "Invalid preferences")
    return dict(partial)


def changed_fields(before: Mapping[str, Any], after: Mapping[str, Any]) -> list[str]:
    """Keys whose value differs between two documents, ignoring ``updatedAt``."""
    keys = (set(before) | set(after)) - {"updatedAt"}
    return sorted(k for k in keys if before.get(k) != after.get(k))


__all__ = [
    "CONSENT_FIELDS",
    "FIELDS",
    "changed_fields",
    "default_preferences",
    "iso_now",
    "validate_partial",
    "validate_preferences",
]
