"""Per-user progress aggregates and daily streaks, maintained from ledger entries.

``apply_entry`` runs inside the same transaction as the ledger insert, so an
entry and its effect on the aggregate either both land or neither does.
Dates come from the entry's own ``created_at`` (UTC), never from the clock at
update time, which keeps the rule deterministic and replayable.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from rada.db.models import LedgerEntry, ProgressAggregate, SourceType, StreakRecord
from rada.gamification.level_curve import compute_level

# manual_adjustment and the community sources never touch completion counters.
COUNTER_FIELDS: dict[str, str] = {
    SourceType.LESSON.value: "lessons_completed",
    SourceType.QUIZ.value: "quizzes_passed",
    SourceType.MODULE.value: "modules_completed",
    SourceType.ACHIEVEMENT.value: "achievements_earned",
}


@dataclass(frozen=True)
class StreakState:
    current_streak: int = 0
    longest_streak: int = 0
    last_activity_date: date | None = None

    @classmethod
    def of(cls, record: StreakRecord) -> StreakState:
        return cls(record.current_streak, record.longest_streak, record.last_activity_date)


def entry_date(created_at: datetime) -> date:
    """UTC calendar date of a ledger timestamp. Naive values are taken as UTC."""
    if created_at.tzinfo is not None:
        created_at = created_at.astimezone(timezone.utc)
    return created_at.date()


def apply_streak_rule(state: StreakState, day: date) -> StreakState:
    """Advance a streak by one activity day.

    - no previous activity   -> streak of 1
    - same day               -> unchanged
    - the following day      -> +1
    - a gap of 2+ days       -> reset to 1
    - an earlier day         -> unchanged; last_activity_date never moves back
    """
    last = state.last_activity_date
    if last is None:
        return StreakState(1, max(state.longest_streak, 1), day)
    if day <= last:
        return state
    if day == last + timedelta(days=1):
        current = state.current_streak + 1
        return StreakState(current, max(state.longest_streak, current), day)
    return StreakState(1, max(state.longest_streak, 1), day)


def replay_streak(days: Iterable[date]) -> StreakState:
    """Rebuild a streak from scratch from a user's activity dates."""
    state = StreakState()
    for day in sorted(set(days)):
        state = apply_streak_rule(state, day)
    return state


def effective_streak(record: StreakRecord | None, today: date) -> int:
    """Streak as the user sees it today: 0 once a full day has been missed."""
    if record is None or record.last_activity_date is None:
        return 0
    if record.last_activity_date >= today - timedelta(days=1):
        return record.current_streak
    return 0


async def get_or_create_progress(
    db: AsyncSession, user_id: int, now: datetime | None = None,
) -> ProgressAggregate:
    """Get or create the aggregate row for a user."""
    progress = await db.get(ProgressAggregate, user_id)
    if progress is not None:
        return progress

    progress = ProgressAggregate(
        user_id=user_id,
        total_xp=0,
        level=compute_level(0)["level"],
        modules_completed=0,
        lessons_completed=0,
        quizzes_passed=0,
        achievements_earned=0,
        updated_at=now or datetime.now(timezone.utc),
    )
    try:
        async with db.begin_nested():
            db.add(progress)
    except IntegrityError:
        # Another transaction created it first
        result = await db.execute(
            select(ProgressAggregate)
            .where(ProgressAggregate.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        progress = result.scalar_one()
    return progress


async def get_or_create_streak(
    db: AsyncSession, user_id: int, now: datetime | None = None,
) -> StreakRecord:
    """Get or create the streak row for a user."""
    record = await db.get(StreakRecord, user_id)
    if record is not None:
        return record

    record = StreakRecord(
        user_id=user_id,
        current_streak=0,
        longest_streak=0,
        last_activity_date=None,
        updated_at=now or datetime.now(timezone.utc),
    )
    try:
        async with db.begin_nested():
            db.add(record)
    except IntegrityError:
        result = await db.execute(
            select(StreakRecord)
            .where(StreakRecord.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        record = result.scalar_one()
    return record


async def lock_progress(db: AsyncSession, user_id: int) -> ProgressAggregate | None:
    result = await db.execute(
        select(ProgressAggregate)
        .where(ProgressAggregate.user_id == user_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def lock_streak(db: AsyncSession, user_id: int) -> StreakRecord | None:
    result = await db.execute(
        select(StreakRecord)
        .where(StreakRecord.user_id == user_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def apply_entry(
    db: AsyncSession, entry: LedgerEntry,
) -> tuple[ProgressAggregate, StreakRecord]:
    """Fold one accepted ledger entry into the user's aggregate and streak."""
    if entry.user_id is None:
        raise ValueError("Ledger entry has no internal user key")
    user_id = entry.user_id

    await get_or_create_progress(db, user_id, entry.created_at)
    await get_or_create_streak(db, user_id, entry.created_at)
    progress = await lock_progress(db, user_id)
    streak = await lock_streak(db, user_id)
    if progress is None or streak is None:
        raise RuntimeError(f"Aggregate rows vanished for user {user_id}")

    progress.total_xp += entry.amount
    progress.level = compute_level(progress.total_xp)["level"]

    counter = COUNTER_FIELDS.get(entry.source_type)
    if counter is not None:
        if entry.is_reversal:
            setattr(progress, counter, getattr(progress, counter) - 1)
        elif entry.amount > 0:
            setattr(progress, counter, getattr(progress, counter) + 1)
    progress.updated_at = entry.created_at

    if entry.amount > 0:
        updated = apply_streak_rule(StreakState.of(streak), entry_date(entry.created_at))
        streak.current_streak = updated.current_streak
        streak.longest_streak = updated.longest_streak
        streak.last_activity_date = updated.last_activity_date
        streak.updated_at = entry.created_at

    await db.flush()
    return progress, streak
