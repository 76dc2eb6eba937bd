"""Lightweight application telemetry helpers.

``track_event`` keeps in-process counts of domain events; ``record_preference_change``
persists one ``pref_changed`` row per changed field inside the caller's session so
the telemetry trail commits or rolls back together with the settings write.
"""
from __future__ import annotations

import uuid
from collections import Counter
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session

from .models import TelemetryEvent

# Local in-process event counts (visibility without a metrics backend)
LOCAL_EVENTS: Counter[str] = Counter()


def track_event(action: str) -> None:
    LOCAL_EVENTS[action] += 1


def record_preference_change(
    db: Session,
    *,
    user_id: str,
    field: str,
    previous: Any,
    new: Any,
    now: datetime,
) -> None:
    db.add(
        TelemetryEvent(
            id=str(uuid.uuid4()),
            name="pref_changed",
            user_id=user_id,
            event_metadata={
                "field": field,
                "old": previous,
                "new": new,
                "timestamp": now.isoformat(),
            },
            created_at=now,
        )
    )
    track_event("pref_changed")


__all__ = ["track_event", "record_preference_change", "LOCAL_EVENTS"]
