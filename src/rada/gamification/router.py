"""Progress API endpoints: per-user progress, streak, XP history, achievements and levels."""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from rada.config import get_settings
from rada.database import get_session
from rada.db.models import Achievement, ProgressAggregate, StreakRecord
from rada.gamification.achievement_service import list_user_achievements
from rada.gamification.aggregate_service import effective_streak
from rada.gamification.ledger_service import get_history
from rada.gamification.level_curve import compute_level, get_curve
from rada.gamification.schemas import (
    AllLevelsResponse,
    EarnedAchievementResponse,
    LevelEntry,
    ProgressResponse,
    StreakResponse,
    UserAchievementsResponse,
    XPHistoryEntry,
    XPHistoryResponse,
)
from rada.identity.resolver import resolve

router = APIRouter(prefix="/api/v1", tags=["Progress"])


@router.get("/levels", response_model=AllLevelsResponse)
async def list_levels():
    """Get the active level curve."""
    settings = get_settings()
    return AllLevelsResponse(
        curve_version=settings.level_curve_version,
        levels=[
            LevelEntry(
                level=t["level"],
                title=t["title"],
                xp_required=t["xp_required"],
                cumulative=t["cumulative"],
            )
            for t in get_curve(settings.level_curve_version)
        ],
    )


@router.get("/users/{user_key}/progress", response_model=ProgressResponse)
async def get_progress(user_key: str, db: AsyncSession = Depends(get_session)):
    """Get a user's XP, level and completion counters."""
    user = await resolve(db, user_key)
    progress = await db.get(ProgressAggregate, user.internal_id)

    # Users with no awards yet have no aggregate row; reads never create one.
    total_xp = progress.total_xp if progress else 0
    level_info = compute_level(total_xp)

    return ProgressResponse(
        user_id=user.internal_id,
        public_id=user.public_id,
        total_xp=total_xp,
        level=level_info["level"],
        level_title=level_info["title"],
        xp_into_level=level_info["xp_into_level"],
        xp_for_level=level_info["xp_for_level"],
        next_level=level_info["next_level"],
        next_title=level_info["next_title"],
        modules_completed=progress.modules_completed if progress else 0,
        lessons_completed=progress.lessons_completed if progress else 0,
        quizzes_passed=progress.quizzes_passed if progress else 0,
        achievements_earned=progress.achievements_earned if progress else 0,
        updated_at=progress.updated_at if progress else None,
    )


@router.get("/users/{user_key}/streak", response_model=StreakResponse)
async def get_streak(user_key: str, db: AsyncSession = Depends(get_session)):
    """Get current streak info."""
    user = await resolve(db, user_key)
    record = await db.get(StreakRecord, user.internal_id)
    today = datetime.now(timezone.utc).date()

    if record is None:
        return StreakResponse(current_streak=0, longest_streak=0)

    return StreakResponse(
        current_streak=record.current_streak,
        longest_streak=record.longest_streak,
        last_activity_date=record.last_activity_date,
        is_active_today=record.last_activity_date == today,
        effective_streak=effective_streak(record, today),
    )


@router.get("/users/{user_key}/xp/history", response_model=XPHistoryResponse)
async def get_xp_history(
    user_key: str,
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=100),
    db: AsyncSession = Depends(get_session),
):
    """Get XP ledger history (paginated)."""
    entries, total = await get_history(db, user_key, page, per_page)

    return XPHistoryResponse(
        entries=[
            XPHistoryEntry(
                id=e.id,
                amount=e.amount,
                source_type=e.source_type,
                reference_id=e.reference_id,
                description=e.description,
                reverses_entry_id=e.reverses_entry_id,
                created_at=e.created_at,
            )
            for e in entries
        ],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get("/users/{user_key}/achievements", response_model=UserAchievementsResponse)
async def get_achievements(user_key: str, db: AsyncSession = Depends(get_session)):
    """Get a user's earned achievements."""
    earned = await list_user_achievements(db, user_key)

    total_available = await db.execute(select(func.count()).select_from(Achievement))

    return UserAchievementsResponse(
        earned=[
            EarnedAchievementResponse(
                slug=ua.achievement.slug,
                title=ua.achievement.title,
                description=ua.achievement.description,
                xp_reward=ua.achievement.xp_reward,
                earned_at=ua.earned_at,
            )
            for ua in earned
        ],
        total_available=total_available.scalar_one(),
        total_earned=len(earned),
    )
