"""Achievement evaluation with duplicate prevention.

Runs after every accepted positive award, inside the same transaction.
Each newly met achievement is recorded once (UNIQUE(user_id, achievement_id))
and its bonus XP goes through the ledger like any other award, which is what
moves ``achievements_earned`` on the aggregate.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import and_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from rada.db.models import (
    Achievement,
    ProgressAggregate,
    SourceType,
    StreakRecord,
    UserAchievement,
)
from rada.identity.resolver import ResolvedUser, UserKey, resolve

logger = logging.getLogger(__name__)

PROGRESS_CRITERIA = frozenset({"lessons_completed", "quizzes_passed", "modules_completed", "total_xp"})


def criteria_met(
    achievement: Achievement,
    progress: ProgressAggregate,
    streak: StreakRecord | None,
) -> bool:
    """Check one achievement's criteria against a user's current standing."""
    if achievement.criteria_type in PROGRESS_CRITERIA:
        return getattr(progress, achievement.criteria_type) >= achievement.criteria_value
    if achievement.criteria_type == "streak_days":
        return streak is not None and streak.current_streak >= achievement.criteria_value
    logger.warning("Unknown achievement criteria: %s (%s)", achievement.criteria_type, achievement.slug)
    return False


async def evaluate_achievements(
    db: AsyncSession,
    user: ResolvedUser,
    now: datetime,
) -> list[str]:
    """Award every achievement the user now qualifies for. Returns new slugs."""
    from rada.gamification.ledger_service import award

    progress = await db.get(ProgressAggregate, user.internal_id)
    if progress is None:
        return []
    streak = await db.get(StreakRecord, user.internal_id)

    result = await db.execute(
        select(Achievement)
        .outerjoin(
            UserAchievement,
            and_(
                UserAchievement.achievement_id == Achievement.id,
                UserAchievement.user_id == user.internal_id,
            ),
        )
        .where(UserAchievement.id.is_(None))
        .order_by(Achievement.sort_order)
    )
    pending = list(result.scalars().unique().all())

    awarded: list[str] = []
    for achievement in pending:
        if not criteria_met(achievement, progress, streak):
            continue

        earned = UserAchievement(
            user_id=user.internal_id,
            user_public_id=user.public_id,
            achievement_id=achievement.id,
            earned_at=now,
        )
        try:
            async with db.begin_nested():
                db.add(earned)
        except IntegrityError:
            # Earned by a nested award or a concurrent transaction
            continue

        if achievement.xp_reward > 0:
            await award(
                db,
                user.internal_id,
                SourceType.ACHIEVEMENT,
                achievement.slug,
                achievement.xp_reward,
                description=f'Earned achievement: "{achievement.title}"',
                now=now,
            )
        awarded.append(achievement.slug)

    if awarded:
        logger.info("User %s earned achievements: %s", user.internal_id, awarded)
    return awarded


async def list_user_achievements(db: AsyncSession, user: UserKey) -> list[UserAchievement]:
    """Earned achievements for a user, most recent first."""
    resolved = await resolve(db, user)
    result = await db.execute(
        select(UserAchievement)
        .where(UserAchievement.user_id == resolved.internal_id)
        .order_by(UserAchievement.earned_at.desc(), UserAchievement.id.desc())
    )
    return list(result.scalars().unique().all())
