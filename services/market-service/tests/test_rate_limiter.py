"""Tests for the Redis-backed rate limiting middleware."""

from fastapi import FastAPI, HTTPException
from fastapi.testclient import TestClient

from redis_rate_limiter import RedisRateLimiter


def _limited_client(redis_client, per_ip=100, per_user=100):
    app = FastAPI()
    app.add_middleware(
        RedisRateLimiter,
        redis_client=redis_client,
        requests_per_minute_ip=per_ip,
        requests_per_minute_user=per_user
    )

    @app.get("/ping")
    async def ping():
        return {"pong": True}

    @app.get("/private")
    async def private():
        raise HTTPException(status_code=401, detail="Invalid token")

    return TestClient(app)


class TestRateLimits:
    def test_ip_limit(self, redis_client):
        client = _limited_client(redis_client, per_ip=2)

        assert client.get("/ping").status_code == 200
        assert client.get("/ping").status_code == 200
        response = client.get("/ping")

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "60"

    def test_forwarded_ips_are_counted_separately(self, redis_client):
        client = _limited_client(redis_client, per_ip=1)

        assert client.get("/ping", headers={"X-Forwarded-For": "10.0.0.1"}).status_code == 200
        assert client.get("/ping", headers={"X-Forwarded-For": "10.0.0.2"}).status_code == 200
        assert client.get("/ping", headers={"X-Forwarded-For": "10.0.0.1"}).status_code == 429

    def test_session_limit(self, redis_client):
        client = _limited_client(redis_client, per_user=1)
        headers = {"Authorization": "Bearer abcdefghijklmnop"}

        assert client.get("/ping", headers=headers).status_code == 200
        assert client.get("/ping", headers=headers).status_code == 429
        assert client.get("/ping").status_code == 200

    def test_redis_outage_lets_requests_through(self, unavailable_redis):
        client = _limited_client(unavailable_redis, per_ip=1)

        for _ in range(3):
            assert client.get("/ping").status_code == 200


class TestSuspiciousActivity:
    def test_failed_auth_is_tracked(self, redis_client):
        client = _limited_client(redis_client)
        attempts = 5

        for _ in range(attempts):
            assert client.get("/private").status_code == 401

        assert redis_client.zcard("suspicious:credential_stuffing:testclient") == attempts
        assert redis_client.zcard("suspicious:abuse:testclient") == attempts
        assert redis_client.zcard("suspicious:endpoint_scanning:testclient") == 0
