"""Health checks and middleware: request id, rate limiting, JSON errors."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import AsyncClient

from rada.middleware import rate_limit


def _fake_redis(count: int) -> MagicMock:
    pipe = MagicMock()
    pipe.execute = AsyncMock(return_value=[count, True])
    redis = MagicMock()
    redis.pipeline.return_value = pipe
    return redis


class TestHealthEndpoints:
    @pytest.mark.asyncio
    async def test_health(self, client: AsyncClient):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    @pytest.mark.asyncio
    async def test_ready_degraded_without_redis_or_seed(self, client: AsyncClient):
        data = (await client.get("/ready")).json()
        assert data["status"] == "degraded"
        assert data["checks"]["database"] == "ok"
        assert data["checks"]["schema"].startswith("error")
        assert data["checks"]["redis"].startswith("error")

    @pytest.mark.asyncio
    async def test_ready_schema_ok_once_seeded(self, client: AsyncClient, achievements):
        data = (await client.get("/ready")).json()
        assert data["checks"]["schema"] == "ok"

    @pytest.mark.asyncio
    async def test_version(self, client: AsyncClient):
        data = (await client.get("/version")).json()
        assert data["level_curve"] == "v2"
        assert "version" in data
        assert "environment" in data


class TestRequestId:
    @pytest.mark.asyncio
    async def test_generated(self, client: AsyncClient):
        response = await client.get("/health")
        assert len(response.headers["x-request-id"]) == 36

    @pytest.mark.asyncio
    async def test_preserved(self, client: AsyncClient):
        response = await client.get("/health", headers={"X-Request-Id": "trace-abc-123"})
        assert response.headers["x-request-id"] == "trace-abc-123"


class TestRateLimit:
    @pytest.mark.asyncio
    async def test_headers_under_limit(self, client: AsyncClient, monkeypatch):
        monkeypatch.setattr(rate_limit, "get_redis", lambda: _fake_redis(1))
        response = await client.get("/api/v1/levels")
        assert response.status_code == 200
        assert response.headers["x-ratelimit-limit"] == "100"
        assert response.headers["x-ratelimit-remaining"] == "99"

    @pytest.mark.asyncio
    async def test_blocks_over_limit(self, client: AsyncClient, monkeypatch):
        monkeypatch.setattr(rate_limit, "get_redis", lambda: _fake_redis(101))
        response = await client.get("/api/v1/levels")
        assert response.status_code == 429
        assert "retry-after" in response.headers
        assert "detail" in response.json()

    @pytest.mark.asyncio
    async def test_health_endpoints_exempt(self, client: AsyncClient, monkeypatch):
        monkeypatch.setattr(rate_limit, "get_redis", lambda: _fake_redis(10_000))
        response = await client.get("/health")
        assert response.status_code == 200


class TestErrorShape:
    @pytest.mark.asyncio
    async def test_unknown_route_is_json(self, client: AsyncClient):
        response = await client.get("/api/v1/nope")
        assert response.status_code == 404
        assert response.json() == {"detail": "Not Found"}

    @pytest.mark.asyncio
    async def test_validation_error_shape(self, client: AsyncClient):
        response = await client.get("/api/v1/leaderboard?limit=0")
        assert response.status_code == 422
        body = response.json()
        assert body["detail"] == "Validation error"
        assert body["errors"][0]["loc"] == ["query", "limit"]
        assert all("ctx" not in e for e in body["errors"])
