"""Settings lifecycle: versioned preference documents, scheduled deletion and export.

Per user the document moves ``absent -> default -> saved -> sanitized``. Every
operation first checks ``settings_ui_enabled``; when it is off the settings
surface answers 404 (``FeatureDisabled``).

Flag suppression (``enforce_preference_flags``) is a view transform: writes
persist the validated document exactly as the client submitted it, and every
value handed back is suppressed. A disabled flag neutralizes an effect, it
never rejects a write.

Writes for one user are serialized by a per-user lock plus a single database
transaction (``SELECT ... FOR UPDATE`` where the dialect supports it).
"""
from __future__ import annotations

import logging
import secrets
import threading
import uuid
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .auth import Identity
from .db import Database, as_utc, utcnow
from .errors import FeatureDisabled, Forbidden, InvalidPayload, NotFound, Unexpected
from .feature_flags import FeatureFlagStore, FlagSnapshot, enforce_preference_flags
from .metrics import Metrics, NoopMetrics
from .models import ConsentLog, DeletionJob, SettingsAudit, SettingsExport, UserPreferencesRow
from .notifications import ExportNotice, LoggingNotificationSink, NotificationSink
from .preferences import (
    CONSENT_FIELDS,
    changed_fields,
    default_preferences,
    iso_now,
    validate_partial,
    validate_preferences,
)
from .telemetry import record_preference_change, track_event

logger = logging.getLogger("travelai.settings")

USER_LOCK_STRIPES = 64


@dataclass(frozen=True)
class DeletionTicket:
    job_id: str
    status: str
    scheduled_for: datetime

    def to_dict(self) -> dict[str, str]:
        return {"jobId": self.job_id, "status": self.status, "scheduledFor": iso_now(self.scheduled_for)}


@dataclass(frozen=True)
class ExportTicket:
    job_id: str
    download_url: str
    status: str

    def to_dict(self) -> dict[str, str]:
        return {"jobId": self.job_id, "downloadUrl": self.download_url, "status": self.status}


@dataclass(frozen=True)
class ExportDownload:
    user_id: str
    archive: dict[str, Any]

    @property
    def filename(self) -> str:
        return f"travelai-settings-{self.user_id}.json"


class SettingsEngine:
    def __init__(
        self,
        db: Database,
        flags: FeatureFlagStore,
        *,
        notifier: NotificationSink | None = None,
        metrics: Metrics | None = None,
        clock: Callable[[], datetime] = utcnow,
        deletion_grace_days: int = 7,
        export_url_prefix: str = "/api/v1/settings/export/",
    ) -> None:
        self.db = db
        self.flags = flags
        self.notifier = notifier or LoggingNotificationSink()
        self.metrics = metrics or NoopMetrics()
        self._clock = clock
        self.deletion_grace = timedelta(days=deletion_grace_days)
        self.export_url_prefix = export_url_prefix
        # fixed stripe of locks; unrelated users may share one
        self._locks: tuple[threading.Lock, ...] = tuple(threading.Lock() for _ in range(USER_LOCK_STRIPES))

    # --- plumbing ---
    def _user_lock(self, user_id: str) -> threading.Lock:
        return self._locks[hash(user_id) % len(self._locks)]

    @contextmanager
    def _tx(self, operation: str) -> Iterator[Session]:
        try:
            with self.db.session_scope() as s:
                yield s
        except SQLAlchemyError as e:
            logger.error("settings storage failure during %s: %s", operation, e)
            raise Unexpected("Settings storage unavailable") from e

    def _gate(self) -> FlagSnapshot:
        self.flags.ensure_defaults()
        snapshot = self.flags.snapshot()
        if not snapshot["settings_ui_enabled"]["enabled"]:
            raise FeatureDisabled()
        return snapshot

    def _row(self, s: Session, user_id: str, *, for_update: bool = False) -> UserPreferencesRow | None:
        stmt = select(UserPreferencesRow).where(UserPreferencesRow.user_id == user_id)
        if for_update and self.db.dialect != "sqlite":
            stmt = stmt.with_for_update()
        return s.scalars(stmt).first()

    def _defaults(self, identity: Identity, now: datetime) -> dict[str, Any]:
        return default_preferences(identity.id, display_name=identity.name, now=now)

    def _save(
        self,
        s: Session,
        user_id: str,
        row: UserPreferencesRow | None,
        doc: dict[str, Any],
        now: datetime,
        operation: str,
        before: Mapping[str, Any],
    ) -> None:
        if row is None:
            s.add(UserPreferencesRow(user_id=user_id, data=doc, updated_at=now))
        else:
            row.data = doc
            row.updated_at = now
        self._record_changes(s, user_id, before, doc, now)
        self.metrics.increment("settings.write", {"operation": operation})
        track_event(f"settings.{operation}")

    def _record_changes(
        self, s: Session, user_id: str, before: Mapping[str, Any], after: Mapping[str, Any], now: datetime
    ) -> None:
        for field in changed_fields(before, after):
            record_preference_change(
                s, user_id=user_id, field=field, previous=before.get(field), new=after.get(field), now=now
            )
        consent = [
            {"field": f, "before": before.get(f), "after": after.get(f)}
            for f in CONSENT_FIELDS
            if before.get(f) != after.get(f)
        ]
        if not consent:
            return
        s.add(SettingsAudit(user_id=user_id, changes=consent, created_at=now))
        for change in consent:
            s.add(
                ConsentLog(
                    user_id=user_id,
                    field=change["field"],
                    old_value=change["before"],
                    new_value=change["after"],
                    recorded_at=now,
                )
            )
        logger.info("consent change user=%s fields=%s", user_id, [c["field"] for c in consent])

    # --- operations ---
    def get(self, identity: Identity) -> dict[str, Any]:
        snapshot = self._gate()
        with self._tx("get") as s:
            row = self._row(s, identity.id)
            doc = dict(row.data) if row is not None else self._defaults(identity, self._clock())
        return enforce_preference_flags(doc, snapshot)

    def replace(self, identity: Identity, payload: object) -> dict[str, Any]:
        snapshot = self._gate()
        if not isinstance(payload, Mapping):
            raise InvalidPayload([{"name": "_", "reason": "Expected object"}], "Invalid settings payload")
        now = self._clock()
        body = dict(payload)
        body["userId"] = identity.id
        if body.get("displayName") is None:
            body.pop("displayName", None)
            if identity.name:
                body["displayName"] = identity.name
        body["updatedAt"] = iso_now(now)
        validated = validate_preferences(body)
        with self._user_lock(identity.id), self._tx("replace") as s:
            row = self._row(s, identity.id, for_update=True)
            current = dict(row.data) if row is not None else self._defaults(identity, now)
            self._save(s, identity.id, row, validated, now, "replace", current)
        return enforce_preference_flags(validated, snapshot)

    def patch(self, identity: Identity, partial: object) -> dict[str, Any]:
        snapshot = self._gate()
        updates = validate_partial(partial)
        with self._user_lock(identity.id), self._tx("patch") as s:
            now = self._clock()
            row = self._row(s, identity.id, for_update=True)
            current = dict(row.data) if row is not None else self._defaults(identity, now)
            merged = {**current, **updates, "userId": identity.id, "updatedAt": iso_now(now)}
            validated = validate_preferences(merged)
            self._save(s, identity.id, row, validated, now, "patch", current)
        return enforce_preference_flags(validated, snapshot)

    def schedule_deletion(self, identity: Identity) -> DeletionTicket:
        self._gate()
        with self._user_lock(identity.id), self._tx("schedule_deletion") as s:
            now = self._clock()
            scheduled_for = now + self.deletion_grace
            job = s.scalars(select(DeletionJob).where(DeletionJob.user_id == identity.id)).first()
            if job is None:
                job = DeletionJob(id=str(uuid.uuid4()), user_id=identity.id, created_at=now)
                s.add(job)
            job.status = "scheduled"
            job.scheduled_for = scheduled_for
            job.processed_at = None
            row = self._row(s, identity.id, for_update=True)
            current = dict(row.data) if row is not None else self._defaults(identity, now)
            sanitized = {**current, "locationSharing": "off", "updatedAt": iso_now(now)}
            self._save(s, identity.id, row, sanitized, now, "schedule_deletion", current)
            ticket = DeletionTicket(job_id=job.id, status="scheduled", scheduled_for=scheduled_for)
        logger.info("Deletion scheduled for %s on %s", identity.id, iso_now(scheduled_for))
        return ticket

    def create_export(self, identity: Identity) -> ExportTicket:
        snapshot = self._gate()
        with self._user_lock(identity.id), self._tx("create_export") as s:
            now = self._clock()
            row = self._row(s, identity.id)
            current = dict(row.data) if row is not None else self._defaults(identity, now)
            archive = {
                "userId": identity.id,
                "exportedAt": iso_now(now),
                "preferences": enforce_preference_flags(current, snapshot),
            }
            record = SettingsExport(
                id=str(uuid.uuid4()),
                user_id=identity.id,
                status="completed",
                artifact=archive,
                download_token=secrets.token_urlsafe(32),
                created_at=now,
                completed_at=now,
            )
            s.add(record)
        ticket = ExportTicket(
            job_id=record.id,
            download_url=f"{self.export_url_prefix}{record.download_token}",
            status="completed",
        )
        self.notifier.export_ready(ExportNotice(identity.id, identity.email, ticket.download_url, ticket.job_id))
        track_event("settings.export")
        return ticket

    def fetch_export(self, identity: Identity, token: str) -> ExportDownload:
        """Hand out an export archive once; the token is consumed on success."""
        self._gate()
        with self._tx("fetch_export") as s:
            # claim first: exactly one caller can flip downloaded_at
            claimed = s.execute(
                update(SettingsExport)
                .where(
                    SettingsExport.download_token == token,
                    SettingsExport.user_id == identity.id,
                    SettingsExport.downloaded_at.is_(None),
                )
                .values(downloaded_at=self._clock())
                .execution_options(synchronize_session=False)
            ).rowcount
            record = s.scalars(select(SettingsExport).where(SettingsExport.download_token == token)).first()
            if claimed != 1:
                if record is None or record.downloaded_at is not None:
                    raise NotFound("Export not found")
                logger.warning("export token presented by non-owner user=%s", identity.id)
                raise Forbidden("Export belongs to another user")
            download = ExportDownload(user_id=record.user_id, archive=dict(record.artifact))
        logger.info("export %s downloaded by %s (created %s)", record.id, identity.id, as_utc(record.created_at))
        return download


__all__ = ["SettingsEngine", "DeletionTicket", "ExportTicket", "ExportDownload"]
