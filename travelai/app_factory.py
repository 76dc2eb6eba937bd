"""Flask application factory.

Provides:
 - App factory with configuration override
 - Process-scoped services (verifier, tenant resolver, rate limiter, flag store,
   settings engine, event store) on ``app.extensions["travelai"]``
 - Unified JSON error schema {error,message}
 - Request id + one structured log line per request
 - Blueprint registration (plugin, settings, admin flags, health)
"""
from __future__ import annotations

import logging
import os
import time
import uuid
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from dotenv import load_dotenv
from flask import Flask, g, request
from werkzeug.wrappers.response import Response

from .admin_flags_api import bp as admin_flags_bp
from .auth import build_verifier
from .config import Config
from .db import Database
from .errors import register_error_handlers
from .events import EventStore
from .feature_flags import FeatureFlagStore
from .health_api import bp as health_bp
from .logging_setup import install_logging
from .metrics import LoggingMetrics, Metrics
from .notifications import LoggingNotificationSink, NotificationSink
from .plugin_api import bp as plugin_bp
from .rate_limiter import build_rate_limiter
from .services import EXTENSION_KEY, Services
from .settings_api import bp as settings_bp
from .settings_engine import SettingsEngine
from .tenant import TenantRegistry, TenantResolver

log = logging.getLogger("travelai.request")


def create_app(
    config_override: dict[str, Any] | None = None,
    *,
    clock: Callable[[], float] = time.time,
    metrics: Metrics | None = None,
    notifier: NotificationSink | None = None,
    redis_client: Any = None,
    http_session: Any = None,
) -> Flask:
    # Load .env early so local runs pick up JWT_SECRET & friends
    load_dotenv()
    app = Flask(__name__)

    # --- Configuration ---
    cfg = Config.from_env()
    if config_override:
        known = {k: v for k, v in config_override.items() if hasattr(cfg, k)}
        if known:
            cfg.override(known)
        for k, v in config_override.items():  # also allow direct Flask config keys
            if k.isupper():
                app.config[k] = v
    # Resolve stable absolute dev DB path when DATABASE_URL not provided
    if not os.getenv("DATABASE_URL") and cfg.database_url == "sqlite:///dev.db":
        os.makedirs(app.instance_path, exist_ok=True)
        cfg.database_url = f"sqlite:///{os.path.join(app.instance_path, 'dev.db')}"
    app.config.update(cfg.to_flask_dict())

    install_logging(cfg.log_level)

    # --- Services ---
    def dt_clock() -> datetime:
        return datetime.fromtimestamp(clock(), UTC)

    metrics = metrics or LoggingMetrics()
    notifier = notifier or LoggingNotificationSink()
    db = Database(cfg.database_url)
    if app.config.get("TESTING") or not cfg.is_production:
        # dev/test convenience; production schemas come from Alembic
        db.create_all()
    flags = FeatureFlagStore(db, metrics=metrics, clock=dt_clock)
    services = Services(
        config=cfg,
        db=db,
        metrics=metrics,
        verifier=build_verifier(cfg, metrics=metrics, clock=clock, session=http_session),
        tenants=TenantResolver(TenantRegistry.from_json(cfg.tenant_registry_json)),
        rate_limiter=build_rate_limiter(cfg, metrics=metrics, clock=clock, redis_client=redis_client),
        flags=flags,
        settings=SettingsEngine(
            db,
            flags,
            notifier=notifier,
            metrics=metrics,
            clock=dt_clock,
            deletion_grace_days=cfg.deletion_grace_days,
            export_url_prefix=cfg.export_url_prefix,
        ),
        events=EventStore(db, clock=dt_clock),
        notifier=notifier,
    )
    app.extensions[EXTENSION_KEY] = services
    app.logger.info(
        "travelai started env=%s rate_limit_backend=%s federated_auth=%s",
        cfg.app_env,
        cfg.rate_limit_backend,
        bool(cfg.identity_provider_url),
    )

    # --- Error handling ---
    register_error_handlers(app)

    # --- Request hooks ---
    @app.before_request
    def _before_req() -> None:
        g._t0 = time.perf_counter()
        g.request_id = request.headers.get("X-Request-Id") or str(uuid.uuid4())

    @app.after_request
    def _after_req(resp: Response) -> Response:
        dur_ms = int((time.perf_counter() - getattr(g, "_t0", time.perf_counter())) * 1000)
        rid = getattr(g, "request_id", None) or str(uuid.uuid4())
        resp.headers["X-Request-Id"] = rid
        resp.headers["X-Request-Duration-ms"] = str(dur_ms)
        if "Cache-Control" not in resp.headers:
            resp.headers["Cache-Control"] = "no-store"
        log.info(
            {
                "request_id": rid,
                "tenant_id": getattr(g, "tenant_id", None),
                "user_id": getattr(g, "user_id", None),
                "method": request.method,
                "path": request.path,
                "status": resp.status_code,
                "duration_ms": dur_ms,
            }
        )
        return resp

    # --- Blueprints ---
    app.register_blueprint(plugin_bp)
    app.register_blueprint(settings_bp)
    app.register_blueprint(admin_flags_bp)
    app.register_blueprint(health_bp)

    return app


__all__ = ["create_app"]
