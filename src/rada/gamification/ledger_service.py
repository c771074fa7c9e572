"""XP ledger: idempotent awards, reversals and sums.

The ledger is the source of truth for every XP total. ``award`` inserts
first and lets the partial unique index on (user, source_type, reference_id)
decide duplicates, so concurrent retries race safely: one insert wins, the
other lands on the "already credited" path. Nothing here commits; callers own
the transaction.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from rada.db.models import LedgerEntry, SourceType
from rada.exceptions import (
    AlreadyReversed,
    InvalidAward,
    InvalidReversal,
    LedgerEntryNotFound,
)
from rada.gamification.aggregate_service import apply_entry
from rada.identity.resolver import UserKey, resolve, resolve_internal

logger = logging.getLogger(__name__)


@dataclass
class AwardResult:
    accepted: bool
    entry_id: int
    entry: LedgerEntry


def _coerce_source(source_type: SourceType | str) -> SourceType:
    try:
        return SourceType(source_type)
    except ValueError:
        raise InvalidAward(f"Unknown source type: {source_type}") from None


async def _find_award(
    db: AsyncSession, user_id: int, source_type: str, reference_id: str,
) -> LedgerEntry | None:
    result = await db.execute(
        select(LedgerEntry).where(
            LedgerEntry.user_id == user_id,
            LedgerEntry.source_type == source_type,
            LedgerEntry.reference_id == reference_id,
            LedgerEntry.amount > 0,
        )
    )
    return result.scalar_one_or_none()


async def award(
    db: AsyncSession,
    user: UserKey,
    source_type: SourceType | str,
    reference_id: str | int,
    amount: int,
    description: str | None = None,
    now: datetime | None = None,
    evaluate_achievements: bool = True,
) -> AwardResult:
    """Credit XP once per (user, source_type, reference_id).

    Returns ``accepted=False`` with the existing entry when the action was
    already credited. That is a success for the caller, not an error.
    """
    source = _coerce_source(source_type)
    reference = str(reference_id).strip()
    if not reference:
        raise InvalidAward("reference_id is required")
    if amount == 0:
        raise InvalidAward("XP amount must be non-zero")
    if amount < 0 and source is not SourceType.MANUAL_ADJUSTMENT:
        raise InvalidAward("Only manual adjustments may award negative XP")

    resolved = await resolve(db, user)
    if now is None:
        now = datetime.now(timezone.utc)

    entry = LedgerEntry(
        user_id=resolved.internal_id,
        user_public_id=resolved.public_id,
        source_type=source.value,
        reference_id=reference,
        amount=amount,
        description=description,
        created_at=now,
    )
    try:
        async with db.begin_nested():
            db.add(entry)
    except IntegrityError:
        existing = await _find_award(db, resolved.internal_id, source.value, reference) if amount > 0 else None
        if existing is None:
            raise
        logger.debug(
            "Award already credited: user=%s source=%s ref=%s entry=%s",
            resolved.internal_id, source.value, reference, existing.id,
        )
        return AwardResult(accepted=False, entry_id=existing.id, entry=existing)

    await apply_entry(db, entry)

    if evaluate_achievements and amount > 0:
        from rada.gamification.achievement_service import evaluate_achievements as _evaluate

        await _evaluate(db, resolved, now)

    return AwardResult(accepted=True, entry_id=entry.id, entry=entry)


async def reverse(
    db: AsyncSession,
    entry_id: int,
    reason: str,
    now: datetime | None = None,
) -> int:
    """Insert a negating entry for a positive award. Returns the new entry id."""
    original = await db.get(LedgerEntry, entry_id)
    if original is None:
        raise LedgerEntryNotFound(entry_id)
    if original.is_reversal or original.amount <= 0:
        raise InvalidReversal(f"Ledger entry {entry_id} is not a positive award")
    if original.user_id is None:
        raise InvalidReversal(f"Ledger entry {entry_id} has no owner; run reconciliation first")

    resolved = await resolve_internal(db, original.user_id)
    if resolved is None:
        raise InvalidReversal(f"Ledger entry {entry_id} belongs to an unknown user")
    if now is None:
        now = datetime.now(timezone.utc)

    reversal = LedgerEntry(
        user_id=resolved.internal_id,
        user_public_id=resolved.public_id,
        source_type=original.source_type,
        reference_id=original.reference_id,
        amount=-original.amount,
        description=f"Reversal: {reason}"[:256],
        reverses_entry_id=original.id,
        created_at=now,
    )
    try:
        async with db.begin_nested():
            db.add(reversal)
    except IntegrityError:
        raise AlreadyReversed(entry_id) from None

    await apply_entry(db, reversal)
    logger.info(
        "Reversed ledger entry %s (user=%s amount=%s reason=%s)",
        entry_id, resolved.internal_id, original.amount, reason,
    )
    return reversal.id


def _source_values(source_filter: SourceType | str | Iterable[SourceType | str]) -> list[str]:
    if isinstance(source_filter, (SourceType, str)):
        source_filter = [source_filter]
    return [_coerce_source(s).value for s in source_filter]


async def sum_for_user_id(
    db: AsyncSession,
    user_id: int,
    source_filter: SourceType | str | Iterable[SourceType | str] | None = None,
    since: datetime | None = None,
) -> int:
    """Ledger sum for an already-resolved internal key."""
    stmt = select(func.coalesce(func.sum(LedgerEntry.amount), 0)).where(LedgerEntry.user_id == user_id)
    if source_filter is not None:
        stmt = stmt.where(LedgerEntry.source_type.in_(_source_values(source_filter)))
    if since is not None:
        stmt = stmt.where(LedgerEntry.created_at >= since)
    result = await db.execute(stmt)
    return int(result.scalar_one())


async def sum_for(
    db: AsyncSession,
    user: UserKey,
    source_filter: SourceType | str | Iterable[SourceType | str] | None = None,
    since: datetime | None = None,
) -> int:
    """Sum of a user's ledger amounts, optionally by source and start time."""
    resolved = await resolve(db, user)
    return await sum_for_user_id(db, resolved.internal_id, source_filter, since)


async def get_history(
    db: AsyncSession,
    user: UserKey,
    page: int = 1,
    per_page: int = 50,
) -> tuple[list[LedgerEntry], int]:
    """Paginated ledger entries for a user, newest first."""
    resolved = await resolve(db, user)

    total_result = await db.execute(
        select(func.count()).select_from(LedgerEntry).where(LedgerEntry.user_id == resolved.internal_id)
    )
    total = total_result.scalar_one()

    offset = (page - 1) * per_page
    result = await db.execute(
        select(LedgerEntry)
        .where(LedgerEntry.user_id == resolved.internal_id)
        .order_by(LedgerEntry.created_at.desc(), LedgerEntry.id.desc())
        .offset(offset)
        .limit(per_page)
    )
    return list(result.scalars().all()), total
