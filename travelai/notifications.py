from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

logger = logging.getLogger("travelai.notifications")


@dataclass(frozen=True)
class ExportNotice:
    user_id: str
    email: str | None
    download_url: str
    export_id: str


class NotificationSink(Protocol):
    def export_ready(self, notice: ExportNotice) -> None: ...  # pragma: no cover - interface only


class LoggingNotificationSink:
    """Stand-in for the mailer. The download link carries a secret token and is never logged."""

    def export_ready(self, notice: ExportNotice) -> None:
        logger.info(
            "Export %s ready for %s; link sent to %s",
            notice.export_id,
            notice.user_id,
            "email on file" if notice.email else "no email on file",
        )


__all__ = ["ExportNotice", "NotificationSink", "LoggingNotificationSink"]
