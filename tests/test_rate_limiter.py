"""
Tests for /auth throttling.

Counters run against a small in-memory stand-in for the Redis pipeline API.
"""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from lawpal.core import config
from lawpal.services.jwt_service import jwt_service
from lawpal.services.rate_limiter import (
    RateLimitDecision,
    RateLimiter,
    limiter,
    rate_limit_middleware,
    request_identity,
)
from lawpal.services.redis_connection import RedisConnection


class CountingPipeline:
    def __init__(self, store, broken=False):
        self.store = store
        self.broken = broken
        self.ops = []

    def incr(self, key):
        self.ops.append(("incr", key))
        return self

    def expire(self, key, ttl):
        self.ops.append(("expire", key, ttl))
        return self

    async def execute(self):
        if self.broken:
            raise ConnectionError("redis went away")
        results = []
        for op in self.ops:
            if op[0] == "incr":
                self.store[op[1]] = self.store.get(op[1], 0) + 1
                results.append(self.store[op[1]])
            else:
                results.append(True)
        return results


class CountingRedis:
    def __init__(self, broken=False):
        self.store: dict[str, int] = {}
        self.broken = broken

    def pipeline(self):
        return CountingPipeline(self.store, self.broken)


@pytest.fixture
def rate_settings(test_settings):
    return test_settings.model_copy(
        update={
            "RATE_LIMIT_GLOBAL_PER_MINUTE": 100,
            "RATE_LIMIT_PER_USER_PER_MINUTE": 5,
            "RATE_LIMIT_CREDENTIAL_PER_MINUTE": 2,
            "RATE_LIMIT_WINDOW_SECONDS": 60,
        }
    )


def _clock():
    return 1_699_999_990.0  # 50 seconds left in its window


def _connected_redis(redis):
    connection = RedisConnection()
    connection.client = redis
    connection._connected = True
    return connection


@pytest.mark.asyncio
async def test_signin_attempts_hit_credential_bucket_first(rate_settings):
    rl = RateLimiter(rate_settings, redis=_connected_redis(CountingRedis()), clock=_clock)

    assert (await rl.check("/auth/signin", "ip:10.0.0.1")).allowed
    assert (await rl.check("/auth/signin", "ip:10.0.0.1")).allowed
    blocked = await rl.check("/auth/signin", "ip:10.0.0.1")

    assert blocked.allowed is False
    assert blocked.bucket == "credential:/auth/signin:ip:10.0.0.1"
    assert blocked.retry_after == 50


@pytest.mark.asyncio
async def test_credential_buckets_are_per_endpoint_and_client(rate_settings):
    rl = RateLimiter(rate_settings, redis=_connected_redis(CountingRedis()), clock=_clock)
    for _ in range(2):
        await rl.check("/auth/signin", "ip:10.0.0.1")

    assert (await rl.check("/auth/forgot-password", "ip:10.0.0.1")).allowed
    assert (await rl.check("/auth/signin", "ip:10.0.0.2")).allowed


@pytest.mark.asyncio
async def test_other_auth_routes_use_client_ceiling(rate_settings):
    rl = RateLimiter(rate_settings, redis=_connected_redis(CountingRedis()), clock=_clock)

    results = [(await rl.check("/auth/conversations", "user:u1")).allowed for _ in range(6)]

    assert results == [True] * 5 + [False]


@pytest.mark.asyncio
async def test_global_ceiling_applies_across_clients(rate_settings):
    rl = RateLimiter(
        rate_settings.model_copy(update={"RATE_LIMIT_GLOBAL_PER_MINUTE": 3}),
        redis=_connected_redis(CountingRedis()),
        clock=_clock,
    )

    for client_id in ("a", "b", "c"):
        assert (await rl.check("/auth/profile", f"user:{client_id}")).allowed
    decision = await rl.check("/auth/profile", "user:d")

    assert decision.allowed is False
    assert decision.bucket == "all"


def test_only_credential_paths_get_the_extra_bucket(rate_settings):
    rl = RateLimiter(rate_settings)

    assert [name for name, _ in rl.buckets("/auth/profile", "user:u1")] == ["all", "client:user:u1"]
    assert rl.buckets("/auth/reset-password", "ip:1.2.3.4")[-1] == ("credential:/auth/reset-password:ip:1.2.3.4", 2)


@pytest.mark.asyncio
async def test_fails_closed_without_redis(rate_settings):
    rl = RateLimiter(rate_settings, redis=RedisConnection())
    assert (await rl.check("/auth/signin", "ip:10.0.0.1")).allowed is False


@pytest.mark.asyncio
async def test_fail_open_when_configured(rate_settings):
    rl = RateLimiter(rate_settings, redis=_connected_redis(CountingRedis(broken=True)), fail_closed=False)
    assert (await rl.check("/auth/signin", "ip:10.0.0.1")).allowed is True


@pytest.mark.asyncio
async def test_redis_error_fails_closed(rate_settings):
    rl = RateLimiter(rate_settings, redis=_connected_redis(CountingRedis(broken=True)))
    assert (await rl.check("/auth/signin", "ip:10.0.0.1")).allowed is False


def _app_with_limiter():
    app = FastAPI()
    app.middleware("http")(rate_limit_middleware)

    @app.post("/auth/signin")
    async def signin():
        return {"success": True}

    @app.get("/auth/profile")
    async def profile():
        return {"success": True}

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app


def test_middleware_answers_429_with_retry_after(monkeypatch, rate_settings):
    monkeypatch.setattr(config.settings, "ENABLE_RATE_LIMITING", True)
    monkeypatch.setattr(limiter, "_config", rate_settings)
    monkeypatch.setattr(limiter, "redis", _connected_redis(CountingRedis()))
    monkeypatch.setattr(limiter, "clock", _clock)
    client = TestClient(_app_with_limiter())

    assert client.post("/auth/signin").status_code == 200
    assert client.post("/auth/signin").status_code == 200
    response = client.post("/auth/signin")

    assert response.status_code == 429
    assert response.headers["Retry-After"] == "50"
    assert response.json() == {"success": False, "message": "Too many requests. Please try again later."}
    # Outside /auth nothing is counted
    assert client.get("/health").status_code == 200


def test_middleware_identifies_signed_in_users(monkeypatch):
    monkeypatch.setattr(config.settings, "ENABLE_RATE_LIMITING", True)
    seen = []

    async def record(path, identity):
        seen.append((path, identity))
        return RateLimitDecision(allowed=True)

    monkeypatch.setattr(limiter, "check", record)
    client = TestClient(_app_with_limiter())
    token = jwt_service.create_access_token("user-9")

    client.get("/auth/profile")
    client.get("/auth/profile", headers={"Authorization": f"Bearer {token}"})

    assert seen[0][1].startswith("ip:")
    assert seen[1] == ("/auth/profile", "user:user-9")


def test_rate_limiting_disabled_by_default(monkeypatch):
    async def explode(path, identity):
        raise AssertionError("limiter should not be consulted")

    monkeypatch.setattr(limiter, "check", explode)

    assert config.settings.ENABLE_RATE_LIMITING is False
    assert TestClient(_app_with_limiter()).post("/auth/signin").status_code == 200


def test_request_identity_ignores_invalid_tokens():
    class FakeRequest:
        headers = {"Authorization": "Bearer forged"}
        client = type("Client", (), {"host": "10.1.2.3"})()

    assert request_identity(FakeRequest()) == "ip:10.1.2.3"
