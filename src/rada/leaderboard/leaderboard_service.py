"""Leaderboard service: XP rankings over rolling windows, computed from the ledger.

The ledger is the only source. Redis holds a short-lived copy of the ranked
page per (window, limit); the requesting user's own rank is always computed
fresh and never cached. Nothing here writes to the database.
"""

from __future__ import annotations

import enum
import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from redis.asyncio import Redis
from redis.exceptions import RedisError
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from rada.config import get_settings
from rada.db.models import LedgerEntry, User
from rada.gamification.ledger_service import sum_for_user_id
from rada.identity.resolver import UserKey, resolve

logger = logging.getLogger(__name__)


class LeaderboardWindow(str, enum.Enum):
    ALL_TIME = "all-time"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


WINDOW_LENGTHS: dict[LeaderboardWindow, timedelta] = {
    LeaderboardWindow.WEEKLY: timedelta(days=7),
    LeaderboardWindow.MONTHLY: timedelta(days=30),
}


def window_start(window: LeaderboardWindow, now: datetime | None = None) -> datetime | None:
    """Start of a rolling window; None for all-time."""
    length = WINDOW_LENGTHS.get(window)
    if length is None:
        return None
    if now is None:
        now = datetime.now(timezone.utc)
    return now - length


def build_cache_key(window: LeaderboardWindow, limit: int) -> str:
    return f"leaderboard:{window.value}:{limit}"


def assign_ranks(rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Competition ranking over rows already sorted by total desc.

    Ties share a rank; the next distinct total is ranked by the number of
    users strictly ahead plus one (100, 100, 50 -> 1, 1, 3).
    """
    ranked = []
    prev_total = None
    rank = 0
    for i, row in enumerate(rows, start=1):
        if row["total_xp"] != prev_total:
            rank = i
            prev_total = row["total_xp"]
        ranked.append({**row, "rank": rank})
    return ranked


def _in_window(stmt, since: datetime | None):  # noqa: ANN001, ANN202
    stmt = stmt.where(LedgerEntry.user_id.isnot(None))
    if since is not None:
        stmt = stmt.where(LedgerEntry.created_at >= since)
    return stmt


async def _ranked_rows(db: AsyncSession, since: datetime | None, limit: int) -> list[dict[str, Any]]:
    total = func.sum(LedgerEntry.amount).label("total_xp")
    first_at = func.min(LedgerEntry.created_at).label("first_at")
    stmt = _in_window(
        select(LedgerEntry.user_id, User.public_id, User.nickname, total, first_at)
        .join(User, User.id == LedgerEntry.user_id),
        since,
    )
    stmt = (
        stmt.group_by(LedgerEntry.user_id, User.public_id, User.nickname)
        .order_by(total.desc(), first_at.asc(), LedgerEntry.user_id.asc())
        .limit(limit)
    )
    result = await db.execute(stmt)
    return assign_ranks([
        {
            "public_id": row.public_id,
            "nickname": row.nickname,
            "total_xp": int(row.total_xp),
        }
        for row in result
    ])


async def get_my_rank(
    db: AsyncSession,
    user_id: int,
    since: datetime | None,
) -> int | None:
    """Rank of one user in a window: users with a strictly greater total, plus one.

    None when the user has no ledger entry in the window.
    """
    has_entry = await db.execute(
        _in_window(select(func.count()).select_from(LedgerEntry), since)
        .where(LedgerEntry.user_id == user_id)
    )
    if has_entry.scalar_one() == 0:
        return None

    own_total = await sum_for_user_id(db, user_id, since=since)

    ahead = (
        _in_window(select(LedgerEntry.user_id).join(User, User.id == LedgerEntry.user_id), since)
        .group_by(LedgerEntry.user_id)
        .having(func.sum(LedgerEntry.amount) > own_total)
        .subquery()
    )
    result = await db.execute(select(func.count()).select_from(ahead))
    return result.scalar_one() + 1


async def _read_cache(redis: Redis | None, key: str) -> dict | None:
    if redis is None:
        return None
    try:
        cached = await redis.get(key)
    except RedisError:
        logger.warning("Leaderboard cache read failed for %s", key, exc_info=True)
        return None
    return json.loads(cached) if cached else None


async def _write_cache(redis: Redis | None, key: str, payload: dict) -> None:
    if redis is None:
        return
    try:
        await redis.set(key, json.dumps(payload), ex=get_settings().leaderboard_cache_ttl_seconds)
    except RedisError:
        logger.warning("Leaderboard cache write failed for %s", key, exc_info=True)


async def rank(
    db: AsyncSession,
    redis: Redis | None,
    window: LeaderboardWindow | str,
    limit: int = 50,
    requesting_user: UserKey | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Top users by XP earned in a window, plus the requesting user's rank."""
    window = LeaderboardWindow(window)
    since = window_start(window, now)

    key = build_cache_key(window, limit)
    page = await _read_cache(redis, key)
    if page is None:
        page = {
            "since": since.isoformat() if since else None,
            "entries": await _ranked_rows(db, since, limit),
        }
        await _write_cache(redis, key, page)

    my_rank = None
    if requesting_user is not None:
        resolved = await resolve(db, requesting_user)
        my_rank = await get_my_rank(db, resolved.internal_id, since)

    return {
        "window": window.value,
        "since": page["since"],
        "entries": page["entries"],
        "my_rank": my_rank,
    }
