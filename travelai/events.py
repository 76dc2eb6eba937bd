"""Tenant-scoped plugin events.

Plugin clients send events in a few legacy shapes. ``normalize_submission``
turns any accepted shape into a ``NewEvent`` once, at the boundary:

- creator: nested ``creator{uid,name,profileImageUrl}`` (``NestedCreator``) or
  flat ``creatorName`` / ``creatorProfileImageUrl`` (``FlatCreator``)
- location: ``{"lat": .., "lng": ..}`` object or ``"lat,lng"`` string
"""
from __future__ import annotations

import logging
import math
import re
import uuid
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from .db import Database, as_utc, utcnow
from .errors import Forbidden, InvalidPayload, NotFound, Unauthorized, Unexpected
from .models import PluginEvent
from .preferences import iso_now

logger = logging.getLogger("travelai.events")

_LATLNG_RE = re.compile(r"^\s*(-?\d+(?:\.\d+)?)\s*,\s*(-?\d+(?:\.\d+)?)\s*$")

# Body keys with a meaning of their own; anything else is kept as extra event data
_RESERVED = frozenset(
    {
        "userId",
        "apiKey",
        "tenantId",
        "creator",
        "creatorName",
        "creatorProfileImageUrl",
        "consentGiven",
        "title",
        "description",
        "location",
        "tags",
    }
)

MAX_LIST_LIMIT = 200
MAX_TITLE_LENGTH = 200  # plugin_events.title column width


@dataclass(frozen=True)
class Location:
    lat: float
    lng: float


@dataclass(frozen=True)
class Creator:
    uid: str
    name: str | None = None
    profile_image_url: str | None = None

    def to_dict(self) -> dict[str, str]:
        out = {"uid": self.uid}
        if self.name:
            out["name"] = self.name
        if self.profile_image_url:
            out["profileImageUrl"] = self.profile_image_url
        return out


@dataclass(frozen=True)
class NestedCreator:
    uid: str | None
    name: str | None
    profile_image_url: str | None


@dataclass(frozen=True)
class FlatCreator:
    name: str | None
    profile_image_url: str | None


@dataclass(frozen=True)
class NewEvent:
    user_id: str
    title: str
    description: str
    location: Location
    creator: Creator
    tags: list[str] = field(default_factory=list)
    consent_given: bool = True
    extra: dict[str, Any] = field(default_factory=dict)


def _text(value: object) -> str | None:
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def _finite(value: object) -> bool:
    return isinstance(value, int | float) and not isinstance(value, bool) and math.isfinite(value)


def parse_location(raw: object) -> Location | None:
    if isinstance(raw, str):
        m = _LATLNG_RE.match(raw)
        if not m:
            return None
        return Location(float(m.group(1)), float(m.group(2)))
    if isinstance(raw, Mapping):
        lat, lng = raw.get("lat"), raw.get("lng")
        if _finite(lat) and _finite(lng):
            return Location(float(lat), float(lng))  # type: ignore[arg-type]
    return None


def creator_variant(data: Mapping[str, Any]) -> NestedCreator | FlatCreator:
    raw = data.get("creator")
    if isinstance(raw, Mapping):
        return NestedCreator(_text(raw.get("uid")), _text(raw.get("name")), _text(raw.get("profileImageUrl")))
    return FlatCreator(_text(data.get("creatorName")), _text(data.get("creatorProfileImageUrl")))


def resolve_creator(variant: NestedCreator | FlatCreator, user_id: str, data: Mapping[str, Any]) -> Creator:
    flat_name = _text(data.get("creatorName"))
    flat_image = _text(data.get("creatorProfileImageUrl"))
    if isinstance(variant, NestedCreator):
        # nested fields win; flat ones fill the gaps
        return Creator(variant.uid or user_id, variant.name or flat_name, variant.profile_image_url or flat_image)
    return Creator(user_id, variant.name, variant.profile_image_url)


def _tags(raw: object) -> list[str]:
    if not isinstance(raw, list):
        return []
    return [t.strip() for t in raw if isinstance(t, str) and t.strip()]


def normalize_submission(data: Mapping[str, Any]) -> NewEvent:
    if data.get("consentGiven") is False:
        raise InvalidPayload(
            [{"name": "consentGiven", "reason": "required"}],
            "User consent is required for data processing",
        )
    user_id = _text(data.get("userId"))
    if not user_id:
        raise Unauthorized("User ID is required")
    title = _text(data.get("title"))
    description = _text(data.get("description"))
    location = parse_location(data.get("location"))
    problems = [
        {"name": name, "reason": "required"}
        for name, value in (("title", title), ("description", description), ("location", location))
        if value is None
    ]
    if problems:
        raise InvalidPayload(problems, "Title, description, and location are required")
    if len(title) > MAX_TITLE_LENGTH:  # type: ignore[arg-type]
        raise InvalidPayload(
            [{"name": "title", "reason": f"must be at most {MAX_TITLE_LENGTH} characters"}], "Title is too long"
        )
    creator = resolve_creator(creator_variant(data), user_id, data)
    extra = {k: v for k, v in data.items() if k not in _RESERVED}
    return NewEvent(
        user_id=user_id,
        title=title,  # type: ignore[arg-type]
        description=description,  # type: ignore[arg-type]
        location=location,  # type: ignore[arg-type]
        creator=creator,
        tags=_tags(data.get("tags")),
        consent_given=True,
        extra=extra,
    )


def normalize_updates(updates: Mapping[str, Any]) -> dict[str, Any]:
    """Validate an update body; returns column -> value."""
    out: dict[str, Any] = {}
    problems: list[dict[str, str]] = []
    for key, value in updates.items():
        if key in ("title", "description"):
            text = _text(value)
            if text is None:
                problems.append({"name": f"updates.{key}", "reason": "must be a non-empty string"})
            elif key == "title" and len(text) > MAX_TITLE_LENGTH:
                problems.append({"name": "updates.title", "reason": f"must be at most {MAX_TITLE_LENGTH} characters"})
            else:
                out[key] = text
        elif key == "tags":
            if not isinstance(value, list):
                problems.append({"name": "updates.tags", "reason": "must be an array of strings"})
            else:
                out["tags"] = _tags(value)
        elif key == "location":
            loc = parse_location(value)
            if loc is None:
                problems.append({"name": "updates.location", "reason": "must have both lat and lng"})
            else:
                out["lat"], out["lng"] = loc.lat, loc.lng
        elif key in ("id", "tenantId", "createdBy", "creator", "createdAt", "updatedAt"):
            problems.append({"name": f"updates.{key}", "reason": "read-only"})
        else:
            out.setdefault("extra", {})[key] = value
    if problems:
        raise InvalidPayload(problems, "Invalid updates")
    if not out:
        raise InvalidPayload([{"name": "updates", "reason": "required"}], "updates payload is required")
    return out


def event_to_dict(row: PluginEvent) -> dict[str, Any]:
    out: dict[str, Any] = dict(row.extra or {})
    out.update(
        {
            "id": row.id,
            "title": row.title,
            "description": row.description or "",
            "tags": list(row.tags or []),
            "location": {"lat": row.lat, "lng": row.lng},
            "createdBy": row.created_by,
            "creator": row.creator,
            "consentGiven": row.consent_given,
            "source": "User",
            "tenantId": row.tenant_id,
            "createdAt": iso_now(as_utc(row.created_at)),
            "updatedAt": iso_now(as_utc(row.updated_at)),
        }
    )
    return out


class EventStore:
    def __init__(self, db: Database, *, clock: Callable[[], datetime] = utcnow) -> None:
        self.db = db
        self._clock = clock

    def list_events(
        self,
        tenant_id: str,
        *,
        limit: int = 50,
        tags: list[str] | None = None,
        created_by: str | None = None,
        since_ms: int | None = None,
    ) -> list[dict[str, Any]]:
        limit = max(1, min(int(limit), MAX_LIST_LIMIT))
        stmt = select(PluginEvent).where(PluginEvent.tenant_id == tenant_id)
        if created_by:
            stmt = stmt.where(PluginEvent.created_by == created_by)
        if since_ms is not None:
            stmt = stmt.where(PluginEvent.created_at > datetime.fromtimestamp(since_ms / 1000, UTC))
        stmt = stmt.order_by(PluginEvent.created_at.desc())
        try:
            with self.db.session_scope() as s:
                rows = s.scalars(stmt).all()
                wanted = set(tags or [])
                out = [event_to_dict(r) for r in rows if not wanted or wanted.intersection(r.tags or [])]
        except SQLAlchemyError as e:
            logger.error("event listing failed tenant=%s: %s", tenant_id, e)
            raise Unexpected("Event storage unavailable") from e
        return out[:limit]

    def create(self, tenant_id: str, event: NewEvent) -> dict[str, Any]:
        now = self._clock()
        row = PluginEvent(
            id=str(uuid.uuid4()),
            tenant_id=tenant_id,
            title=event.title,
            description=event.description,
            tags=list(event.tags),
            lat=event.location.lat,
            lng=event.location.lng,
            created_by=event.user_id,
            creator=event.creator.to_dict(),
            consent_given=event.consent_given,
            extra=dict(event.extra),
            created_at=now,
            updated_at=now,
        )
        try:
            with self.db.session_scope() as s:
                s.add(row)
        except SQLAlchemyError as e:
            logger.error("event insert failed tenant=%s: %s", tenant_id, e)
            raise Unexpected("Failed to save event") from e
        logger.info("event submitted id=%s tenant=%s", row.id, tenant_id)
        return event_to_dict(row)

    def _owned(self, s, tenant_id: str, event_id: str) -> PluginEvent:
        row = s.get(PluginEvent, event_id)
        if row is None:
            raise NotFound("Event not found")
        if row.tenant_id != tenant_id:
            logger.warning("tenant %s attempted to modify event %s of another tenant", tenant_id, event_id)
            raise Forbidden("Tenant mismatch")
        return row

    def update(self, tenant_id: str, event_id: str, updates: Mapping[str, Any]) -> dict[str, Any]:
        changes = normalize_updates(updates)
        try:
            with self.db.session_scope() as s:
                row = self._owned(s, tenant_id, event_id)
                extra = changes.pop("extra", None)
                for column, value in changes.items():
                    setattr(row, column, value)
                if extra:
                    row.extra = {**(row.extra or {}), **extra}
                row.updated_at = self._clock()
                s.flush()
                out = event_to_dict(row)
        except SQLAlchemyError as e:
            logger.error("event update failed id=%s: %s", event_id, e)
            raise Unexpected("Failed to update event") from e
        return out

    def delete(self, tenant_id: str, event_id: str) -> None:
        try:
            with self.db.session_scope() as s:
                row = self._owned(s, tenant_id, event_id)
                s.delete(row)
        except SQLAlchemyError as e:
            logger.error("event delete failed id=%s: %s", event_id, e)
            raise Unexpected("Failed to delete event") from e
        logger.info("event deleted id=%s tenant=%s", event_id, tenant_id)


__all__ = [
    "Creator",
    "EventStore",
    "FlatCreator",
    "Location",
    "NestedCreator",
    "NewEvent",
    "creator_variant",
    "event_to_dict",
    "normalize_submission",
    "normalize_updates",
    "parse_location",
]
