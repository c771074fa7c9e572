"""Integration tests for the leaderboard endpoint."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient

from rada.gamification.ledger_service import award


@pytest.mark.asyncio
async def test_all_time_with_ties(client: AsyncClient, db_session, user_factory):
    now = datetime.now(timezone.utc)
    a = await user_factory(db_session, "achieng")
    b = await user_factory(db_session, "baraka")
    c = await user_factory(db_session, "chege")
    await award(db_session, a.id, "module", "M1", 100, now=now - timedelta(hours=3))
    await award(db_session, b.id, "module", "M1", 100, now=now - timedelta(hours=2))
    await award(db_session, c.id, "quiz", "Q1", 50, now=now - timedelta(hours=1))
    await db_session.commit()

    response = await client.get(f"/api/v1/leaderboard?user={c.public_id}")

    assert response.status_code == 200
    data = response.json()
    assert data["window"] == "all-time"
    assert data["since"] is None
    assert [(e["nickname"], e["rank"]) for e in data["entries"]] == [
        ("achieng", 1), ("baraka", 1), ("chege", 3),
    ]
    assert data["my_rank"] == 3
    assert "user_id" not in data["entries"][0]


@pytest.mark.asyncio
async def test_weekly_window(client: AsyncClient, db_session, user_factory):
    now = datetime.now(timezone.utc)
    old = await user_factory(db_session, "old-timer")
    fresh = await user_factory(db_session, "fresh")
    await award(db_session, old.id, "module", "M1", 1000, now=now - timedelta(days=10))
    await award(db_session, fresh.id, "lesson", "L1", 20, now=now - timedelta(days=1))
    await db_session.commit()

    data = (await client.get(f"/api/v1/leaderboard?window=weekly&user={old.id}")).json()

    assert [e["nickname"] for e in data["entries"]] == ["fresh"]
    assert data["my_rank"] is None
    assert data["since"] is not None


@pytest.mark.asyncio
async def test_limit(client: AsyncClient, db_session, user_factory):
    for i in range(3):
        user = await user_factory(db_session, f"user-{i}")
        await award(db_session, user.id, "lesson", "L1", 10 * (i + 1))
    await db_session.commit()

    data = (await client.get("/api/v1/leaderboard?limit=2")).json()
    assert [e["total_xp"] for e in data["entries"]] == [30, 20]


@pytest.mark.asyncio
async def test_limit_above_maximum(client: AsyncClient):
    response = await client.get("/api/v1/leaderboard?limit=101")
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_unknown_window(client: AsyncClient):
    response = await client.get("/api/v1/leaderboard?window=yearly")
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_unknown_requesting_user(client: AsyncClient):
    response = await client.get("/api/v1/leaderboard?user=31337")
    assert response.status_code == 404
