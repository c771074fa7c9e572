"""Operator endpoints: reconciliation, reversals, manual awards and challenge publishing.

All routes require the X-Admin-Token header.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from rada.admin.dependencies import require_admin
from rada.admin.schemas import (
    AwardResponse,
    ManualAwardRequest,
    ReconcileResponse,
    ReverseRequest,
    ReverseResponse,
)
from rada.challenges.challenge_service import ChallengeService
from rada.challenges.schemas import PublishChallengeRequest, PublishChallengeResponse
from rada.config import get_settings
from rada.database import get_session
from rada.gamification.ledger_service import award, reverse
from rada.reconcile.reconcile_service import run_reconciliation

router = APIRouter(prefix="/api/v1/admin", tags=["Admin"], dependencies=[Depends(require_admin)])


@router.post("/reconcile", response_model=ReconcileResponse)
async def reconcile(db: AsyncSession = Depends(get_session)):
    """Run the reconciliation sweep and return what it repaired."""
    summary = await run_reconciliation(db)
    return ReconcileResponse(**summary.as_dict())


@router.post("/ledger/{entry_id}/reverse", response_model=ReverseResponse)
async def reverse_entry(
    entry_id: int,
    body: ReverseRequest,
    db: AsyncSession = Depends(get_session),
):
    """Negate a positive ledger entry."""
    reversal_id = await reverse(db, entry_id, body.reason)
    await db.commit()
    return ReverseResponse(reversed_entry_id=entry_id, reversal_entry_id=reversal_id)


@router.post("/awards", response_model=AwardResponse)
async def manual_award(
    body: ManualAwardRequest,
    db: AsyncSession = Depends(get_session),
):
    """Credit (or, for manual adjustments, debit) XP by hand. Credits are idempotent on reference_id."""
    result = await award(
        db,
        body.user,
        body.source_type,
        body.reference_id,
        body.amount,
        description=body.description,
    )
    await db.commit()
    return AwardResponse(
        accepted=result.accepted,
        entry_id=result.entry_id,
        amount=result.entry.amount,
        created_at=result.entry.created_at,
    )


@router.post("/challenges", response_model=PublishChallengeResponse)
async def publish_challenge(
    body: PublishChallengeRequest,
    db: AsyncSession = Depends(get_session),
):
    """Publish the challenge for a date. Re-publishing a date returns the existing one."""
    svc = ChallengeService(db)
    challenge, created = await svc.get_or_create_challenge(
        publish_date=body.publish_date,
        title=body.title,
        question_set=[q.model_dump() for q in body.questions],
        xp_reward=body.xp_reward or get_settings().daily_challenge_xp_reward,
    )
    await db.commit()
    return PublishChallengeResponse(
        id=challenge.id,
        publish_date=challenge.publish_date,
        title=challenge.title,
        xp_reward=challenge.xp_reward,
        created=created,
    )
