import pytest

redis = pytest.importorskip("redis")

from travelai.rate_limiter import RateLimitBackendError  # noqa: E402
from travelai.rate_limiter_redis import RedisRateLimiter  # noqa: E402


class FakeRedis:
    """Enough of redis-py for INCR/PTTL/PEXPIRE/GET pipelines; ttl driven by a shared clock."""

    def __init__(self, clock):
        self.clock = clock
        self.store = {}
        self.expiry = {}

    def _now_ms(self):
        return int(self.clock() * 1000)

    def _purge(self, key):
        exp = self.expiry.get(key)
        if exp is not None and self._now_ms() >= exp:
            self.store.pop(key, None)
            self.expiry.pop(key, None)

    def incr(self, key, amount=1):
        self._purge(key)
        self.store[key] = int(self.store.get(key, 0)) + amount
        return self.store[key]

    def get(self, key):
        self._purge(key)
        val = self.store.get(key)
        return None if val is None else str(val).encode()

    def pttl(self, key):
        self._purge(key)
        if key not in self.store:
            return -2
        if key not in self.expiry:
            return -1
        return self.expiry[key] - self._now_ms()

    def pexpire(self, key, ms):
        self.expiry[key] = self._now_ms() + ms
        return True

    def pipeline(self, transaction=True):
        return FakePipeline(self)


class FakePipeline:
    def __init__(self, r):
        self.r = r
        self.ops = []

    def incr(self, key, amount=1):
        self.ops.append(("incr", key, amount))
        return self

    def pttl(self, key):
        self.ops.append(("pttl", key))
        return self

    def get(self, key):
        self.ops.append(("get", key))
        return self

    def execute(self):
        out = [getattr(self.r, op[0])(*op[1:]) for op in self.ops]
        self.ops = []
        return out


class DownRedis:
    def pipeline(self, transaction=True):
        raise redis.ConnectionError("connection refused")


class Clock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


def test_redis_fixed_window_limit_and_reset():
    clock = Clock()
    client = FakeRedis(clock)
    rl = RedisRateLimiter("redis://unused", "t:rl:", client=client, clock=clock)
    decisions = [rl.check("acme:requests", 2, 10_000) for _ in range(3)]
    assert [d.allowed for d in decisions] == [True, True, False]
    assert decisions[0].reset_at == 1_010_000
    assert "t:rl:acme:requests" in client.store
    clock.now += 4
    assert rl.check("acme:requests", 2, 10_000).reset_at == 1_010_000
    clock.now += 6
    d = rl.check("acme:requests", 2, 10_000)
    assert d.allowed and d.remaining == 1


def test_redis_key_without_ttl_gets_one():
    clock = Clock()
    client = FakeRedis(clock)
    client.store["p:k"] = 5
    rl = RedisRateLimiter("redis://unused", "p:", client=client, clock=clock)
    d = rl.check("k", 10, 5_000)
    assert d.allowed and d.remaining == 4
    assert client.expiry["p:k"] == 1_005_000


def test_redis_peek_does_not_consume():
    clock = Clock()
    client = FakeRedis(clock)
    rl = RedisRateLimiter("redis://unused", "p:", client=client, clock=clock)
    fresh = rl.peek("k", 3, 1_000)
    assert fresh.allowed and fresh.remaining == 3
    rl.check("k", 3, 1_000)
    assert rl.peek("k", 3, 1_000).remaining == 2
    assert rl.peek("k", 3, 1_000).remaining == 2


def test_redis_errors_surface_as_backend_error():
    rl = RedisRateLimiter("redis://unused", "p:", client=DownRedis(), clock=Clock())
    with pytest.raises(RateLimitBackendError):
        rl.check("k", 1, 1000)
    with pytest.raises(RateLimitBackendError):
        rl.peek("k", 1, 1000)


def test_app_with_redis_backend(make_app, clock):
    app = make_app(rate_limit_backend="redis", redis_client=FakeRedis(clock))
    client = app.test_client()
    r = client.get("/api/plugin/fetch-events", headers={"x-api-key": "test-key"})
    assert r.status_code == 200, r.get_json()
    assert r.headers["X-RateLimit-Limit"] == "20"
    assert r.headers["X-RateLimit-Remaining"] == "19"


def test_app_with_unreachable_redis_returns_500(make_app):
    app = make_app(rate_limit_backend="redis", redis_client=DownRedis())
    r = app.test_client().get("/api/plugin/fetch-events", headers={"x-api-key": "test-key"})
    assert r.status_code == 500
    assert r.get_json()["error"] == "unexpected"
