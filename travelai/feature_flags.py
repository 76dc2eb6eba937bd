"""Persisted feature flags gating the settings surface.

Rows live in ``feature_flags`` (created lazily on first use). Bootstrap rows are
inserted with ``enabled=false``; until an admin toggles a row (``toggled_at`` is
set) the read layer reports the per-key default instead, so
``settings_ui_enabled`` is on out of the box.

Reads fail open: if the store cannot be reached every read returns
``DEFAULT_SNAPSHOT`` and the degradation is logged at WARNING and counted as
``feature_flags.degraded``. Writes never fail silently.
"""
from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import Any, Literal, TypedDict

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from .db import Database, as_utc, utcnow
from .errors import Unexpected
from .metrics import Metrics, NoopMetrics
from .models import FeatureFlagRow

logger = logging.getLogger("travelai.feature_flags")

FlagKey = Literal["settings_ui_enabled", "auto_join_v1", "live_location"]

FLAG_KEYS: tuple[str, ...] = ("settings_ui_enabled", "auto_join_v1", "live_location")


class FlagValue(TypedDict):
    enabled: bool
    payload: dict[str, Any] | None


class FlagState(TypedDict):
    key: str
    enabled: bool
    payload: dict[str, Any] | None
    updatedAt: str | None


FlagSnapshot = dict[str, FlagValue]

_DEFAULT_ENABLED: dict[str, bool] = {
    "settings_ui_enabled": True,
    "auto_join_v1": False,
    "live_location": False,
}


def default_snapshot() -> FlagSnapshot:
    return {k: {"enabled": _DEFAULT_ENABLED[k], "payload": None} for k in FLAG_KEYS}


DEFAULT_SNAPSHOT: Mapping[str, FlagValue] = default_snapshot()


def _payload(raw: object) -> dict[str, Any] | None:
    return raw if isinstance(raw, dict) else None


class FeatureFlagStore:
    def __init__(
        self,
        db: Database,
        *,
        metrics: Metrics | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.db = db
        self.metrics = metrics or NoopMetrics()
        self._clock = clock
        self._table_ready = False
        self._lock = threading.Lock()

    # --- internals ---
    def _ensure_table(self) -> None:
        if self._table_ready:
            return
        with self._lock:
            if not self._table_ready:
                self.db.create_tables(FeatureFlagRow.__table__)
                self._table_ready = True

    def _degraded(self, operation: str, error: Exception) -> None:
        logger.warning("feature flag store unavailable during %s; using defaults: %s", operation, error)
        self.metrics.increment("feature_flags.degraded", {"operation": operation})

    @staticmethod
    def _value(row: FeatureFlagRow | None, default: bool) -> FlagValue:
        if row is None or row.toggled_at is None:
            return {"enabled": default, "payload": _payload(row.payload) if row is not None else None}
        return {"enabled": bool(row.enabled), "payload": _payload(row.payload)}

    # --- public API ---
    def ensure_defaults(self) -> None:
        """Insert every known key with ``enabled=false`` if absent."""
        try:
            self._ensure_table()
            with self.db.session_scope() as s:
                existing = set(s.scalars(select(FeatureFlagRow.key)).all())
                now = self._clock()
                for key in FLAG_KEYS:
                    if key not in existing:
                        s.add(FeatureFlagRow(key=key, enabled=False, payload=None, updated_at=now, toggled_at=None))
        except SQLAlchemyError as e:
            self._degraded("ensure_defaults", e)

    def get_flag(self, key: str, default: bool | None = None) -> FlagValue:
        fallback = _DEFAULT_ENABLED.get(key, False) if default is None else default
        try:
            self._ensure_table()
            with self.db.session_scope() as s:
                row = s.get(FeatureFlagRow, key)
                return self._value(row, fallback)
        except SQLAlchemyError as e:
            self._degraded("get_flag", e)
            return {"enabled": fallback, "payload": None}

    def is_enabled(self, key: str, default: bool | None = None) -> bool:
        return self.get_flag(key, default)["enabled"]

    def snapshot(self) -> FlagSnapshot:
        try:
            self._ensure_table()
            with self.db.session_scope() as s:
                rows = {r.key: r for r in s.scalars(select(FeatureFlagRow)).all()}
                return {k: self._value(rows.get(k), _DEFAULT_ENABLED[k]) for k in FLAG_KEYS}
        except SQLAlchemyError as e:
            self._degraded("snapshot", e)
            return default_snapshot()

    def list_flags(self) -> list[FlagState]:
        try:
            self._ensure_table()
            with self.db.session_scope() as s:
                rows = {r.key: r for r in s.scalars(select(FeatureFlagRow)).all()}
                out: list[FlagState] = []
                for k in FLAG_KEYS:
                    row = rows.get(k)
                    value = self._value(row, _DEFAULT_ENABLED[k])
                    updated = as_utc(row.updated_at) if row is not None else None
                    out.append(
                        {
                            "key": k,
                            "enabled": value["enabled"],
                            "payload": value["payload"],
                            "updatedAt": updated.isoformat() if updated else None,
                        }
                    )
                return out
        except SQLAlchemyError as e:
            self._degraded("list_flags", e)
            return [
                {"key": k, "enabled": _DEFAULT_ENABLED[k], "payload": None, "updatedAt": None} for k in FLAG_KEYS
            ]

    def set_flag(self, key: str, enabled: bool, payload: dict[str, Any] | None = None) -> FlagValue:
        if key not in _DEFAULT_ENABLED:
            raise ValueError("unknown flag")
        try:
            self._ensure_table()
            with self.db.session_scope() as s:
                now = self._clock()
                row = s.get(FeatureFlagRow, key)
                if row is None:
                    row = FeatureFlagRow(key=key)
                    s.add(row)
                row.enabled = bool(enabled)
                row.payload = payload
                row.updated_at = now
                row.toggled_at = now
        except SQLAlchemyError as e:
            logger.error("failed to persist feature flag %s: %s", key, e)
            raise Unexpected("Failed to update feature flag") from e
        logger.info("feature flag %s set enabled=%s", key, bool(enabled))
        return {"enabled": bool(enabled), "payload": payload}


def enforce_preference_flags(prefs: Mapping[str, Any], snapshot: Mapping[str, FlagValue]) -> dict[str, Any]:
    """Return a copy of ``prefs`` with flag-disabled effects neutralized.

    ``autoJoin`` is forced false unless ``auto_join_v1`` is on and
    ``locationSharing`` is forced ``"off"`` unless ``live_location`` is on.
    Applying it twice gives the same result as applying it once.
    """
    out = dict(prefs)
    if not snapshot.get("auto_join_v1", DEFAULT_SNAPSHOT["auto_join_v1"])["enabled"]:
        out["autoJoin"] = False
    if not snapshot.get("live_location", DEFAULT_SNAPSHOT["live_location"])["enabled"]:
        out["locationSharing"] = "off"
    return out


__all__ = [
    "FLAG_KEYS",
    "DEFAULT_SNAPSHOT",
    "FeatureFlagStore",
    "FlagSnapshot",
    "FlagState",
    "FlagValue",
    "default_snapshot",
    "enforce_preference_flags",
]
