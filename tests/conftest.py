import os
import sys

import pytest

# Path setup before any project imports to satisfy E402
ROOT = os.path.dirname(__file__)
PARENT = os.path.abspath(os.path.join(ROOT, ".."))
if PARENT not in sys.path:  # pragma: no cover - environment dependent
    sys.path.insert(0, PARENT)


JWT_SECRET = "test-secret"

# Host settings that would otherwise leak into Config.from_env()
_ENV_VARS = (
    "APP_ENV",
    "DATABASE_URL",
    "JWT_SECRET",
    "IDENTITY_PROVIDER_URL",
    "TENANT_REGISTRY_JSON",
    "RATE_LIMIT_BACKEND",
    "RATE_LIMITS_JSON",
    "DELETION_GRACE_DAYS",
)


class FakeClock:
    """Controllable epoch-seconds clock shared by auth, limiter and stores."""

    def __init__(self, start: float = 1_760_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingMetrics:
    def __init__(self):
        self.events = []

    def increment(self, name, tags=None):
        self.events.append((name, dict(tags or {})))

    def count(self, name, **tags):
        return sum(1 for n, t in self.events if n == name and all(t.get(k) == v for k, v in tags.items()))


class RecordingNotifier:
    def __init__(self):
        self.sent = []

    def export_ready(self, notice):
        self.sent.append(notice)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def metrics():
    return RecordingMetrics()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def make_app(tmp_path, monkeypatch, clock, metrics, notifier):
    for var in _ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    from travelai.app_factory import create_app

    built = []

    def _make(**overrides):
        cfg = {
            "TESTING": True,
            "database_url": f"sqlite:///{tmp_path / f'test-{len(built)}.db'}",
            "jwt_secret": JWT_SECRET,
            "rate_limit_backend": "memory",
        }
        cfg.update(overrides)
        extra = {k: cfg.pop(k) for k in ("redis_client", "http_session") if k in cfg}
        app = create_app(cfg, clock=clock, metrics=metrics, notifier=notifier, **extra)
        built.append(app)
        return app

    yield _make
    for app in built:
        app.extensions["travelai"].db.dispose()


@pytest.fixture
def app(make_app):
    return make_app()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def services(app):
    return app.extensions["travelai"]


@pytest.fixture
def make_token(clock):
    from travelai.jwt_utils import encode

    def _make(sub="user-1", *, name=None, email=None, scope=None, ttl=3600):
        claims = {"sub": sub}
        if name:
            claims["name"] = name
        if email:
            claims["email"] = email
        if scope:
            claims["scope"] = scope
        return encode(claims, secret=JWT_SECRET, ttl=ttl, now=clock())

    return _make


@pytest.fixture
def auth_headers(make_token):
    def _headers(sub="user-1", **claims):
        return {"Authorization": f"Bearer {make_token(sub, **claims)}"}

    return _headers
