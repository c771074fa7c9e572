"""Pydantic response models for progress endpoints."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel


# --- Progress ---


class ProgressResponse(BaseModel):
    user_id: int
    public_id: str
    total_xp: int
    level: int
    level_title: str
    xp_into_level: int
    xp_for_level: int
    next_level: int
    next_title: str
    modules_completed: int = 0
    lessons_completed: int = 0
    quizzes_passed: int = 0
    achievements_earned: int = 0
    updated_at: datetime | None = None


# --- XP ---


class XPHistoryEntry(BaseModel):
    id: int
    amount: int
    source_type: str
    reference_id: str
    description: str | None = None
    reverses_entry_id: int | None = None
    created_at: datetime


class XPHistoryResponse(BaseModel):
    entries: list[XPHistoryEntry]
    total: int
    page: int
    per_page: int


# --- Streak ---


class StreakResponse(BaseModel):
    current_streak: int
    longest_streak: int
    last_activity_date: date | None = None
    is_active_today: bool = False
    effective_streak: int = 0  # 0 once a full day has been missed


# --- Achievements ---


class EarnedAchievementResponse(BaseModel):
    slug: str
    title: str
    description: str
    xp_reward: int
    earned_at: datetime


class UserAchievementsResponse(BaseModel):
    earned: list[EarnedAchievementResponse]
    total_available: int
    total_earned: int


# --- Levels ---


class LevelEntry(BaseModel):
    level: int
    title: str
    xp_required: int
    cumulative: int


class AllLevelsResponse(BaseModel):
    curve_version: str
    levels: list[LevelEntry]
