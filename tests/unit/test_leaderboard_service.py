"""Leaderboard tests: competition ranks, rolling windows, my_rank, cache."""

import json
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy import select

from rada.db.models import LedgerEntry
from rada.gamification.ledger_service import award, reverse
from rada.leaderboard.leaderboard_service import (
    LeaderboardWindow,
    assign_ranks,
    build_cache_key,
    rank,
    window_start,
)

NOW = datetime(2026, 6, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def ranked_users(db_session, user_factory):
    """Three users: 100 (earliest), 100, 50, all within the last week."""

    async def _make():
        amina = await user_factory(db_session, "amina")
        brian = await user_factory(db_session, "brian")
        chebet = await user_factory(db_session, "chebet")
        await award(db_session, amina.id, "module", "M1", 100, now=NOW - timedelta(days=2))
        await award(db_session, brian.id, "module", "M1", 60, now=NOW - timedelta(days=1))
        await award(db_session, brian.id, "quiz", "Q1", 40, now=NOW - timedelta(days=1))
        await award(db_session, chebet.id, "quiz", "Q1", 50, now=NOW - timedelta(hours=3))
        await db_session.commit()
        return amina, brian, chebet

    return _make


class TestAssignRanks:
    def test_ties_share_rank_and_skip(self):
        rows = [{"total_xp": 100}, {"total_xp": 100}, {"total_xp": 50}]
        assert [r["rank"] for r in assign_ranks(rows)] == [1, 1, 3]

    def test_distinct_totals(self):
        rows = [{"total_xp": 30}, {"total_xp": 20}, {"total_xp": 10}]
        assert [r["rank"] for r in assign_ranks(rows)] == [1, 2, 3]

    def test_empty(self):
        assert assign_ranks([]) == []


class TestWindows:
    def test_rolling_starts(self):
        assert window_start(LeaderboardWindow.ALL_TIME, NOW) is None
        assert window_start(LeaderboardWindow.WEEKLY, NOW) == NOW - timedelta(days=7)
        assert window_start(LeaderboardWindow.MONTHLY, NOW) == NOW - timedelta(days=30)

    def test_cache_key(self):
        assert build_cache_key(LeaderboardWindow.WEEKLY, 25) == "leaderboard:weekly:25"


class TestRank:
    @pytest.mark.asyncio
    async def test_competition_ranking(self, db_session, ranked_users):
        amina, brian, chebet = await ranked_users()
        board = await rank(db_session, None, "all-time", limit=10, now=NOW)

        assert board["window"] == "all-time"
        assert board["since"] is None
        assert [(e["public_id"], e["total_xp"], e["rank"]) for e in board["entries"]] == [
            (amina.public_id, 100, 1),  # reached 100 first
            (brian.public_id, 100, 1),
            (chebet.public_id, 50, 3),
        ]
        assert board["my_rank"] is None

    @pytest.mark.asyncio
    async def test_entries_expose_public_key_only(self, db_session, ranked_users):
        await ranked_users()
        board = await rank(db_session, None, LeaderboardWindow.ALL_TIME, limit=10, now=NOW)
        assert set(board["entries"][0]) == {"public_id", "nickname", "total_xp", "rank"}

    @pytest.mark.asyncio
    async def test_my_rank_beyond_limit(self, db_session, ranked_users):
        _, brian, chebet = await ranked_users()
        board = await rank(db_session, None, "all-time", limit=1, requesting_user=chebet.public_id, now=NOW)
        assert len(board["entries"]) == 1
        assert board["my_rank"] == 3

        board = await rank(db_session, None, "all-time", limit=1, requesting_user=brian.id, now=NOW)
        assert board["my_rank"] == 1

    @pytest.mark.asyncio
    async def test_weekly_window_excludes_old_entries(self, db_session, ranked_users, user_factory):
        amina, _, chebet = await ranked_users()
        veteran = await user_factory(db_session, "veteran")
        await award(db_session, veteran.id, "module", "M9", 5000, now=NOW - timedelta(days=20))
        await award(db_session, chebet.id, "lesson", "L1", 5, now=NOW - timedelta(days=8))
        await db_session.commit()

        weekly = await rank(db_session, None, "weekly", limit=10, requesting_user=veteran.id, now=NOW)
        assert veteran.public_id not in [e["public_id"] for e in weekly["entries"]]
        assert weekly["my_rank"] is None
        assert {e["public_id"]: e["total_xp"] for e in weekly["entries"]}[chebet.public_id] == 50

        monthly = await rank(db_session, None, "monthly", limit=10, requesting_user=veteran.id, now=NOW)
        assert monthly["entries"][0]["public_id"] == veteran.public_id
        assert monthly["my_rank"] == 1
        assert monthly["since"] == (NOW - timedelta(days=30)).isoformat()

    @pytest.mark.asyncio
    async def test_reversals_count_against_window_total(self, db_session, ranked_users):
        amina, brian, _ = await ranked_users()
        board = await rank(db_session, None, "all-time", limit=10, now=NOW)
        first = board["entries"][0]["public_id"]
        assert first == amina.public_id

        entry = await db_session.execute(
            select(LedgerEntry.id).where(LedgerEntry.user_id == amina.id)
        )
        await reverse(db_session, entry.scalar_one(), "plagiarised", now=NOW - timedelta(hours=1))
        await db_session.commit()

        board = await rank(db_session, None, "all-time", limit=10, requesting_user=amina.id, now=NOW)
        assert board["entries"][0]["public_id"] == brian.public_id
        assert board["my_rank"] == 3

    @pytest.mark.asyncio
    async def test_my_rank_ignores_unattributed_entries(self, db_session, ranked_users):
        _, _, chebet = await ranked_users()
        for user_id, public_id in ((None, "00000000-0000-0000-0000-000000000000"), (987654, None)):
            db_session.add(LedgerEntry(
                user_id=user_id, user_public_id=public_id, source_type="module",
                reference_id="M7", amount=900, created_at=NOW - timedelta(hours=1),
            ))
        await db_session.commit()

        board = await rank(db_session, None, "all-time", limit=10, requesting_user=chebet.id, now=NOW)
        listed = {e["public_id"]: e["rank"] for e in board["entries"]}
        assert len(listed) == 3
        assert board["my_rank"] == listed[chebet.public_id] == 3

    @pytest.mark.asyncio
    async def test_unknown_window(self, db_session):
        with pytest.raises(ValueError):
            await rank(db_session, None, "yearly", limit=10, now=NOW)


class TestCache:
    @pytest.mark.asyncio
    async def test_miss_populates_cache(self, db_session, ranked_users):
        await ranked_users()
        redis = AsyncMock()
        redis.get.return_value = None

        board = await rank(db_session, redis, "all-time", limit=10, now=NOW)

        redis.get.assert_awaited_once_with("leaderboard:all-time:10")
        key, payload = redis.set.await_args.args
        assert key == "leaderboard:all-time:10"
        assert redis.set.await_args.kwargs["ex"] == 30
        assert json.loads(payload)["entries"] == board["entries"]

    @pytest.mark.asyncio
    async def test_hit_serves_cached_page_but_fresh_my_rank(self, db_session, ranked_users):
        _, _, chebet = await ranked_users()
        cached = {"since": None, "entries": [{"public_id": "cached", "nickname": None, "total_xp": 1, "rank": 1}]}
        redis = AsyncMock()
        redis.get.return_value = json.dumps(cached)

        board = await rank(db_session, redis, "all-time", limit=10, requesting_user=chebet.id, now=NOW)

        assert board["entries"] == cached["entries"]
        assert board["my_rank"] == 3
        redis.set.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_redis_failure_falls_back_to_ledger(self, db_session, ranked_users):
        await ranked_users()
        redis = AsyncMock()
        redis.get.side_effect = RedisConnectionError("down")
        redis.set.side_effect = RedisConnectionError("down")

        board = await rank(db_session, redis, "all-time", limit=10, now=NOW)
        assert len(board["entries"]) == 3
