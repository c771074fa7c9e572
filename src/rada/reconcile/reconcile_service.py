"""Reconciliation sweep: repair identity keys, aggregates and streaks from the ledger.

Scans take no locks. Each repair locks only the row it fixes, recomputes the
expected values under that lock and commits on its own, so the sweep can run
alongside live awards. Rows that cannot be attributed to a user are reported,
never deleted and never guessed. Running the sweep twice with no writes in
between reports zero repairs the second time.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import case, func, or_, select, union
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from rada.db.models import (
    ChallengeAttempt,
    LedgerEntry,
    ProgressAggregate,
    StreakRecord,
    User,
    UserAchievement,
)
from rada.gamification.aggregate_service import (
    COUNTER_FIELDS,
    StreakState,
    entry_date,
    get_or_create_progress,
    get_or_create_streak,
    lock_progress,
    lock_streak,
    replay_streak,
)
from rada.gamification.level_curve import compute_level
from rada.identity.resolver import resolve_internal, resolve_public

logger = logging.getLogger(__name__)

# Tables carrying both user keys.
DUAL_KEY_MODELS = (LedgerEntry, ChallengeAttempt, UserAchievement)

AGGREGATE_FIELDS = ("total_xp", "level", *COUNTER_FIELDS.values())


@dataclass
class DriftDetected:
    """A stored value that disagreed with the ledger. Logged, never raised."""

    user_id: int
    table: str
    field: str
    stored: Any
    expected: Any


@dataclass
class Orphan:
    table: str
    row_id: int
    reason: str


@dataclass
class ReconciliationSummary:
    identity_repairs: int = 0
    aggregate_repairs: int = 0
    streak_repairs: int = 0
    aggregates_created: int = 0
    orphans: list[Orphan] = field(default_factory=list)
    drift: list[DriftDetected] = field(default_factory=list)

    @property
    def total_repairs(self) -> int:
        return (
            self.identity_repairs
            + self.aggregate_repairs
            + self.streak_repairs
            + self.aggregates_created
        )

    def as_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["total_repairs"] = self.total_repairs
        return data


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------


async def _repair_identity_row(
    db: AsyncSession,
    model: type,
    row_id: int,
    user_id: int | None,
    public_id: str | None,
    summary: ReconciliationSummary,
) -> None:
    table = model.__tablename__
    if user_id is None and public_id is None:
        summary.orphans.append(Orphan(table, row_id, "no user key"))
        return

    if user_id is not None:
        resolved = await resolve_internal(db, user_id)
        reason = f"unknown internal key {user_id}"
    else:
        resolved = await resolve_public(db, public_id)
        reason = f"unknown public key {public_id}"
    if resolved is None:
        summary.orphans.append(Orphan(table, row_id, reason))
        return

    result = await db.execute(
        select(model).where(model.id == row_id).with_for_update().execution_options(populate_existing=True)
    )
    row = result.scalar_one_or_none()
    if row is None or (row.user_id is not None and row.user_public_id is not None):
        await db.rollback()
        return

    row.user_id = resolved.internal_id
    row.user_public_id = resolved.public_id
    try:
        await db.commit()
    except IntegrityError:
        # Filling the key would duplicate a row the user already has
        await db.rollback()
        summary.orphans.append(Orphan(table, row_id, "conflicts with an existing row for the user"))
        return

    summary.identity_repairs += 1
    logger.info("Filled user keys on %s %s (user=%s)", table, row_id, resolved.internal_id)


async def reconcile_identity(db: AsyncSession, summary: ReconciliationSummary) -> None:
    """Fill a missing key from the other one; report rows that cannot be attributed."""
    for model in DUAL_KEY_MODELS:
        table = model.__tablename__

        result = await db.execute(
            select(model.id, model.user_id, model.user_public_id)
            .where(or_(model.user_id.is_(None), model.user_public_id.is_(None)))
            .order_by(model.id)
        )
        incomplete = result.all()

        result = await db.execute(
            select(model.id)
            .join(User, User.id == model.user_id)
            .where(model.user_public_id.isnot(None), User.public_id != model.user_public_id)
            .order_by(model.id)
        )
        for (row_id,) in result.all():
            summary.orphans.append(Orphan(table, row_id, "user keys disagree"))

        for row_id, user_id, public_id in incomplete:
            await _repair_identity_row(db, model, row_id, user_id, public_id, summary)


# ---------------------------------------------------------------------------
# Aggregates & streaks
# ---------------------------------------------------------------------------


async def expected_progress(db: AsyncSession, user_id: int) -> dict[str, int]:
    """Aggregate values as the ledger defines them for one user."""
    result = await db.execute(
        select(
            LedgerEntry.source_type,
            func.coalesce(func.sum(LedgerEntry.amount), 0).label("amount"),
            func.sum(case((LedgerEntry.reverses_entry_id.isnot(None), 0), (LedgerEntry.amount > 0, 1), else_=0))
            .label("positives"),
            func.sum(case((LedgerEntry.reverses_entry_id.isnot(None), 1), else_=0)).label("reversals"),
        )
        .where(LedgerEntry.user_id == user_id)
        .group_by(LedgerEntry.source_type)
    )

    expected = {name: 0 for name in AGGREGATE_FIELDS}
    for row in result:
        expected["total_xp"] += int(row.amount)
        counter = COUNTER_FIELDS.get(row.source_type)
        if counter is not None:
            expected[counter] += int(row.positives or 0) - int(row.reversals or 0)
    expected["level"] = compute_level(expected["total_xp"])["level"]
    return expected


async def expected_streak(db: AsyncSession, user_id: int) -> StreakState:
    result = await db.execute(
        select(LedgerEntry.created_at).where(
            LedgerEntry.user_id == user_id,
            LedgerEntry.amount > 0,
        )
    )
    return replay_streak(entry_date(created_at) for (created_at,) in result)


def _drift(
    user_id: int, table: str, record: object, expected: dict[str, Any], summary: ReconciliationSummary,
) -> bool:
    found = False
    for name, value in expected.items():
        stored = getattr(record, name)
        if stored != value:
            finding = DriftDetected(user_id, table, name, stored, value)
            summary.drift.append(finding)
            logger.warning(
                "Drift detected: %s.%s for user %s (stored=%s expected=%s)",
                table, name, user_id, stored, value,
            )
            setattr(record, name, value)
            found = True
    return found


async def _candidate_users(db: AsyncSession) -> list[int]:
    # Unknown internal keys are reported as orphans, never given aggregates.
    referenced = union(
        select(LedgerEntry.user_id).where(LedgerEntry.user_id.isnot(None)),
        select(ProgressAggregate.user_id),
        select(StreakRecord.user_id),
    ).subquery()
    result = await db.execute(
        select(User.id).where(User.id.in_(select(referenced.c.user_id))).order_by(User.id)
    )
    return list(result.scalars().all())


async def reconcile_progress(
    db: AsyncSession, user_id: int, summary: ReconciliationSummary, now: datetime,
) -> None:
    if await db.get(ProgressAggregate, user_id) is None:
        await get_or_create_progress(db, user_id, now)
        await db.commit()
        summary.aggregates_created += 1
        logger.info("Created missing progress aggregate for user %s", user_id)

    progress = await lock_progress(db, user_id)
    if progress is None:
        await db.rollback()
        return
    expected = await expected_progress(db, user_id)
    if _drift(user_id, ProgressAggregate.__tablename__, progress, expected, summary):
        progress.updated_at = now
        await db.commit()
        summary.aggregate_repairs += 1
    else:
        await db.rollback()


async def reconcile_streak(
    db: AsyncSession, user_id: int, summary: ReconciliationSummary, now: datetime,
) -> None:
    if await db.get(StreakRecord, user_id) is None:
        await get_or_create_streak(db, user_id, now)
        await db.commit()
        summary.aggregates_created += 1
        logger.info("Created missing streak record for user %s", user_id)

    record = await lock_streak(db, user_id)
    if record is None:
        await db.rollback()
        return
    state = await expected_streak(db, user_id)
    expected: dict[str, Any] = {
        "current_streak": state.current_streak,
        "longest_streak": state.longest_streak,
        "last_activity_date": state.last_activity_date,
    }
    if _drift(user_id, StreakRecord.__tablename__, record, expected, summary):
        record.updated_at = now
        await db.commit()
        summary.streak_repairs += 1
    else:
        await db.rollback()


async def run_reconciliation(db: AsyncSession, now: datetime | None = None) -> ReconciliationSummary:
    """Run the full sweep. Commits each repair as it goes."""
    if now is None:
        now = datetime.now(timezone.utc)
    summary = ReconciliationSummary()

    await reconcile_identity(db, summary)

    for user_id in await _candidate_users(db):
        await reconcile_progress(db, user_id, summary, now)
        await reconcile_streak(db, user_id, summary, now)

    logger.info(
        "Reconciliation complete: %d repairs (identity=%d aggregates=%d streaks=%d created=%d), %d orphans",
        summary.total_repairs,
        summary.identity_repairs,
        summary.aggregate_repairs,
        summary.streak_repairs,
        summary.aggregates_created,
        len(summary.orphans),
    )
    return summary
