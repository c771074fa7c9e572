"""Leaderboard API endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from rada.config import get_settings
from rada.database import get_session
from rada.leaderboard.leaderboard_service import LeaderboardWindow, rank
from rada.leaderboard.schemas import LeaderboardResponse
from rada.redis_client import get_optional_redis

router = APIRouter(prefix="/api/v1", tags=["Leaderboard"])


@router.get("/leaderboard", response_model=LeaderboardResponse)
async def get_leaderboard(
    window: LeaderboardWindow = Query(LeaderboardWindow.ALL_TIME),
    limit: int = Query(50, ge=1),
    user: str | None = Query(None, description="Either user key, to include my_rank"),
    db: AsyncSession = Depends(get_session),
    redis: Redis | None = Depends(get_optional_redis),
):
    """Get the XP leaderboard for a rolling window."""
    max_limit = get_settings().leaderboard_max_limit
    if limit > max_limit:
        raise HTTPException(status_code=422, detail=f"limit must be at most {max_limit}")

    return LeaderboardResponse(**await rank(db, redis, window, limit, requesting_user=user))
