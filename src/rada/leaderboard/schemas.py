"""Pydantic response models for the XP leaderboard."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class LeaderboardEntry(BaseModel):
    rank: int
    public_id: str
    nickname: str | None = None
    total_xp: int


class LeaderboardResponse(BaseModel):
    window: str
    since: datetime | None = None
    entries: list[LeaderboardEntry]
    my_rank: int | None = None
