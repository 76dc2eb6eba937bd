"""Process-scoped service container.

The factory builds one ``Services`` per app and stores it on
``app.extensions["travelai"]``; blueprints reach it through ``get_services()``.
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app, g, request

from .auth import CredentialVerifier, Identity
from .config import Config
from .db import Database
from .events import EventStore
from .feature_flags import FeatureFlagStore
from .metrics import Metrics
from .notifications import NotificationSink
from .rate_limiter import TenantRateLimiter
from .settings_engine import SettingsEngine
from .tenant import TenantResolver

EXTENSION_KEY = "travelai"


@dataclass
class Services:
    config: Config
    db: Database
    metrics: Metrics
    verifier: CredentialVerifier
    tenants: TenantResolver
    rate_limiter: TenantRateLimiter
    flags: FeatureFlagStore
    settings: SettingsEngine
    events: EventStore
    notifier: NotificationSink


def get_services() -> Services:
    return current_app.extensions[EXTENSION_KEY]


def current_identity() -> Identity:
    """Verify the request's bearer credential; raises ``Unauthorized``."""
    identity = get_services().verifier.verify_header(request.headers.get("Authorization"))
    g.user_id = identity.id
    return identity


__all__ = ["Services", "get_services", "current_identity", "EXTENSION_KEY"]
