from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass
class Config:
    secret_key: str = "change-me"
    database_url: str = "sqlite:///dev.db"
    app_env: str = "development"
    jwt_secret: str = ""
    jwt_leeway_seconds: int = 0
    identity_provider_url: str = ""  # empty disables federated verification
    identity_provider_api_key: str = ""
    identity_provider_timeout: float = 5.0
    tenant_registry_json: str = ""
    rate_limit_backend: str = "memory"
    redis_url: str = "redis://localhost:6379/0"
    rate_limit_prefix: str = "travelai:rl:"
    rate_limits_json: str = ""
    deletion_grace_days: int = 7
    export_url_prefix: str = "/api/v1/settings/export/"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> Config:
        return cls(
            secret_key=os.getenv("SECRET_KEY", "change-me"),
            database_url=os.getenv("DATABASE_URL", "sqlite:///dev.db"),
            app_env=os.getenv("APP_ENV", "development").strip().lower() or "development",
            jwt_secret=os.getenv("JWT_SECRET", ""),
            jwt_leeway_seconds=int(os.getenv("JWT_LEEWAY_SECONDS", "0")),
            identity_provider_url=os.getenv("IDENTITY_PROVIDER_URL", ""),
            identity_provider_api_key=os.getenv("IDENTITY_PROVIDER_API_KEY", ""),
            identity_provider_timeout=float(os.getenv("IDENTITY_PROVIDER_TIMEOUT", "5")),
            tenant_registry_json=os.getenv("TENANT_REGISTRY_JSON", ""),
            rate_limit_backend=os.getenv("RATE_LIMIT_BACKEND", "memory").strip().lower() or "memory",
            redis_url=os.getenv("REDIS_URL", "redis://localhost:6379/0"),
            rate_limit_prefix=os.getenv("RATE_LIMIT_PREFIX", "travelai:rl:"),
            rate_limits_json=os.getenv("RATE_LIMITS_JSON", ""),
            deletion_grace_days=int(os.getenv("DELETION_GRACE_DAYS", "7")),
            export_url_prefix=os.getenv("EXPORT_URL_PREFIX", "/api/v1/settings/export/"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    def override(self, d: dict):
        for k, v in d.items():
            if hasattr(self, k):
                setattr(self, k, v)

    def to_flask_dict(self):
        return {
            "SECRET_KEY": self.secret_key,
            "SQLALCHEMY_DATABASE_URI": self.database_url,
            "APP_ENV": self.app_env,
            # Raw exception text is only surfaced outside production
            "EXPOSE_ERROR_DETAIL": not self.is_production,
        }
