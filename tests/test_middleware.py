"""
Tests for middleware and the response envelope.
"""

import pytest
from fastapi import FastAPI
from httpx import AsyncClient, ASGITransport
from redis.exceptions import ConnectionError as RedisConnectionError

from gatehouse.api.middleware import RateLimitMiddleware, SecurityHeadersMiddleware


class FakePipeline:
    """Just enough of a redis pipeline for the sliding window."""

    def __init__(self, store: dict[str, list[float]], fail: bool = False):
        self.store = store
        self.fail = fail
        self.ops: list[tuple] = []

    def zremrangebyscore(self, key, low, high):
        self.ops.append(("zrem", key, low, high))
        return self

    def zadd(self, key, mapping):
        self.ops.append(("zadd", key, list(mapping.values())))
        return self

    def zcard(self, key):
        self.ops.append(("zcard", key))
        return self

    def expire(self, key, seconds):
        self.ops.append(("expire", key))
        return self

    async def execute(self):
        if self.fail:
            raise RedisConnectionError("redis is down")
        results = []
        for op in self.ops:
            name, key = op[0], op[1]
            entries = self.store.setdefault(key, [])
            if name == "zrem":
                _, _, low, high = op
                self.store[key] = [s for s in entries if not (low <= s <= high)]
                results.append(len(entries) - len(self.store[key]))
            elif name == "zadd":
                entries.extend(op[2])
                results.append(len(op[2]))
            elif name == "zcard":
                results.append(len(entries))
            else:
                results.append(True)
        return results


class FakeRedis:
    def __init__(self, fail: bool = False):
        self.store: dict[str, list[float]] = {}
        self.fail = fail

    def pipeline(self):
        return FakePipeline(self.store, fail=self.fail)


def make_app(redis_client, trusted_proxies=None) -> FastAPI:
    app = FastAPI()
    app.add_middleware(
        RateLimitMiddleware,
        redis_client=redis_client,
        enabled=True,
        trusted_proxies=trusted_proxies or [],
    )

    @app.post("/api/v1/auth/login")
    async def login():
        return {"ok": True}

    @app.get("/api/v1/users")
    async def users():
        return {"ok": True}

    return app


@pytest.mark.asyncio
async def test_login_is_throttled_at_five_per_window():
    app = make_app(FakeRedis())

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        statuses = [(await client.post("/api/v1/auth/login")).status_code for _ in range(6)]
        other = await client.get("/api/v1/users")

    assert statuses == [200] * 5 + [429]
    # Separate bucket for everything else
    assert other.status_code == 200
    assert other.headers["X-RateLimit-Limit"] == "60"


@pytest.mark.asyncio
async def test_throttled_response_uses_envelope():
    app = make_app(FakeRedis())

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        for _ in range(5):
            await client.post("/api/v1/auth/login")
        response = await client.post("/api/v1/auth/login")

    body = response.json()
    assert response.status_code == 429
    assert body["success"] is False
    assert body["error"]["code"] == "RATE_LIMITED"
    assert "Retry-After" in response.headers


@pytest.mark.asyncio
async def test_forwarded_for_ignored_from_untrusted_peer():
    app = make_app(FakeRedis())

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        statuses = [
            (
                await client.post(
                    "/api/v1/auth/login",
                    headers={"X-Forwarded-For": f"10.0.0.{i}"},
                )
            ).status_code
            for i in range(6)
        ]

    assert statuses == [200] * 5 + [429]


@pytest.mark.asyncio
async def test_forwarded_for_honoured_from_trusted_proxy():
    # ASGITransport reports the peer as 127.0.0.1
    app = make_app(FakeRedis(), trusted_proxies=["127.0.0.1"])

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        for _ in range(5):
            await client.post("/api/v1/auth/login", headers={"X-Forwarded-For": "10.0.0.1"})
        blocked = await client.post(
            "/api/v1/auth/login", headers={"X-Forwarded-For": "10.0.0.1"}
        )
        other = await client.post(
            "/api/v1/auth/login", headers={"X-Forwarded-For": "10.0.0.2, 127.0.0.1"}
        )

    assert blocked.status_code == 429
    assert other.status_code == 200


@pytest.mark.asyncio
async def test_rate_limiter_fails_open():
    app = make_app(FakeRedis(fail=True))

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.post("/api/v1/auth/login")

    assert response.status_code == 200


@pytest.mark.asyncio
async def test_security_headers():
    app = FastAPI()
    app.add_middleware(SecurityHeadersMiddleware, hsts=True)

    @app.get("/ping")
    async def ping():
        return {"ok": True}

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.get("/ping")

    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["X-Frame-Options"] == "DENY"
    assert response.headers["Referrer-Policy"] == "strict-origin-when-cross-origin"
    assert response.headers["Strict-Transport-Security"].startswith("max-age=63072000")


@pytest.mark.asyncio
async def test_app_responses_carry_request_id_and_headers(client: AsyncClient):
    response = await client.get("/health", headers={"X-Request-ID": "req-123"})

    assert response.status_code == 200
    assert response.headers["X-Request-ID"] == "req-123"
    assert response.headers["X-Content-Type-Options"] == "nosniff"
    # HSTS is only sent in production
    assert "Strict-Transport-Security" not in response.headers


@pytest.mark.asyncio
async def test_unknown_route_uses_envelope(client: AsyncClient):
    response = await client.get("/api/v1/nowhere")

    body = response.json()
    assert response.status_code == 404
    assert body["success"] is False
    assert body["error"]["code"] == "NOT_FOUND"
    assert body["timestamp"].endswith("Z")
