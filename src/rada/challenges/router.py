"""Daily challenge endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from rada.challenges.challenge_service import ChallengeService
from rada.challenges.schemas import (
    AttemptRequest,
    AttemptResponse,
    AttemptStatus,
    ChallengeLeaderboardEntry,
    ChallengeLeaderboardResponse,
    ChallengeQuestion,
    TodayChallengeResponse,
)
from rada.database import get_session

router = APIRouter(prefix="/api/v1/challenges", tags=["Challenges"])


@router.get("/today", response_model=TodayChallengeResponse)
async def get_today_challenge(
    user: str | None = Query(None, description="Either user key, to include attempt status"),
    db: AsyncSession = Depends(get_session),
):
    """Get today's challenge (answers withheld)."""
    svc = ChallengeService(db)
    today = await svc.get_today(user)
    if today is None:
        raise HTTPException(status_code=404, detail="No challenge available today")

    attempt = today["attempt"]
    status = AttemptStatus()
    if attempt is not None:
        status = AttemptStatus(
            completed=True,
            score=attempt.score,
            max_score=attempt.max_score,
            time_taken=attempt.time_taken,
            completed_at=attempt.completed_at,
        )

    return TodayChallengeResponse(
        id=today["id"],
        publish_date=today["publish_date"],
        title=today["title"],
        xp_reward=today["xp_reward"],
        questions=[ChallengeQuestion(**q) for q in today["questions"]],
        attempt=status,
    )


@router.post("/{challenge_id}/attempt", response_model=AttemptResponse)
async def submit_attempt(
    challenge_id: int,
    body: AttemptRequest,
    db: AsyncSession = Depends(get_session),
):
    """Submit the user's single attempt at a challenge."""
    svc = ChallengeService(db)
    result = await svc.submit(
        body.user,
        challenge_id,
        [a.model_dump() for a in body.answers],
        body.time_taken,
    )
    await db.commit()

    return AttemptResponse(
        attempt_id=result.attempt_id,
        score=result.score,
        max_score=result.max_score,
        percentage=result.percentage,
        xp_earned=result.xp_earned,
        new_streak=result.new_streak,
    )


@router.get("/{challenge_id}/leaderboard", response_model=ChallengeLeaderboardResponse)
async def get_challenge_leaderboard(
    challenge_id: int,
    limit: int = Query(100, ge=1, le=100),
    db: AsyncSession = Depends(get_session),
):
    """Ranked attempts for one challenge."""
    svc = ChallengeService(db)
    rows = await svc.challenge_leaderboard(challenge_id, limit)
    return ChallengeLeaderboardResponse(
        challenge_id=challenge_id,
        entries=[ChallengeLeaderboardEntry(**r) for r in rows],
    )
