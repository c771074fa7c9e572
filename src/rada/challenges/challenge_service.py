"""Daily challenge service: publishing, one scored attempt per user, per-challenge ranking."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from rada.config import get_settings
from rada.db.models import ChallengeAttempt, ChallengeInstance, SourceType, StreakRecord
from rada.exceptions import AlreadyAttempted, ChallengeNotAvailable, ChallengeNotFound
from rada.gamification.ledger_service import award
from rada.identity.resolver import UserKey, resolve

logger = logging.getLogger(__name__)

QUESTIONS_PER_CHALLENGE = 3

# Rotated through by ensure_daily_challenge when no editor has published one.
DEFAULT_QUESTION_BANK: list[dict[str, Any]] = [
    {
        "prompt": "How many counties does Kenya have under the 2010 Constitution?",
        "options": ["8", "47", "290", "349"],
        "correct_index": 1,
    },
    {
        "prompt": "Which house of Parliament represents the interests of the counties?",
        "options": ["National Assembly", "County Assembly", "Senate", "Cabinet"],
        "correct_index": 2,
    },
    {
        "prompt": "How often are general elections held in Kenya?",
        "options": ["Every 3 years", "Every 4 years", "Every 5 years", "Every 7 years"],
        "correct_index": 2,
    },
    {
        "prompt": "Which chapter of the Constitution contains the Bill of Rights?",
        "options": ["Chapter One", "Chapter Four", "Chapter Six", "Chapter Eleven"],
        "correct_index": 1,
    },
    {
        "prompt": "Who heads a county government's executive?",
        "options": ["The Senator", "The County Commissioner", "The Governor", "The MCA"],
        "correct_index": 2,
    },
    {
        "prompt": "What is the minimum share of national revenue allocated to counties?",
        "options": ["5%", "15%", "25%", "50%"],
        "correct_index": 1,
    },
    {
        "prompt": "Which body conducts elections and referendums?",
        "options": ["IEBC", "EACC", "KNCHR", "CAJ"],
        "correct_index": 0,
    },
    {
        "prompt": "Chapter Six of the Constitution deals with which topic?",
        "options": ["Land", "Devolution", "Leadership and Integrity", "Public Finance"],
        "correct_index": 2,
    },
    {
        "prompt": "Who represents a ward in the County Assembly?",
        "options": ["Member of County Assembly", "Woman Representative", "Senator", "Chief"],
        "correct_index": 0,
    },
]


@dataclass
class AttemptResult:
    attempt_id: int
    score: int
    max_score: int
    percentage: int
    xp_earned: int
    new_streak: int


def public_questions(question_set: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Question payload safe to send to clients (no answer key)."""
    return [{k: v for k, v in q.items() if k != "correct_index"} for q in question_set]


def score_answers(
    question_set: list[dict[str, Any]],
    answers: list[dict[str, Any]],
) -> tuple[int, int]:
    """Return (correct answers, number of questions). Each question counts once."""
    key = {str(q["id"]): q.get("correct_index") for q in question_set}
    correct: set[str] = set()
    for answer in answers:
        qid = str(answer.get("question_id"))
        if qid in key and answer.get("selected_index") == key[qid]:
            correct.add(qid)
    return len(correct), len(question_set)


def default_question_set(day: date) -> list[dict[str, Any]]:
    """Deterministic pick of questions from the bank for a calendar day."""
    start = (day.toordinal() * QUESTIONS_PER_CHALLENGE) % len(DEFAULT_QUESTION_BANK)
    picked = []
    for i in range(QUESTIONS_PER_CHALLENGE):
        question = DEFAULT_QUESTION_BANK[(start + i) % len(DEFAULT_QUESTION_BANK)]
        picked.append({"id": i + 1, **question})
    return picked


class ChallengeService:
    """Daily challenges: publish, fetch, gate attempts, award XP."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    # --- Publishing ---

    async def get_challenge_for_date(self, day: date) -> ChallengeInstance | None:
        result = await self.db.execute(
            select(ChallengeInstance).where(ChallengeInstance.publish_date == day)
        )
        return result.scalar_one_or_none()

    async def get_or_create_challenge(
        self,
        publish_date: date,
        title: str,
        question_set: list[dict[str, Any]],
        xp_reward: int,
        now: datetime | None = None,
    ) -> tuple[ChallengeInstance, bool]:
        """Publish a challenge for a date. Returns (challenge, created).

        Idempotent on publish_date: a second publish for the same day returns
        the existing instance unchanged.
        """
        existing = await self.get_challenge_for_date(publish_date)
        if existing is not None:
            return existing, False

        challenge = ChallengeInstance(
            publish_date=publish_date,
            title=title,
            question_set=question_set,
            xp_reward=xp_reward,
            created_at=now or datetime.now(timezone.utc),
        )
        try:
            async with self.db.begin_nested():
                self.db.add(challenge)
        except IntegrityError:
            # Published concurrently
            existing = await self.get_challenge_for_date(publish_date)
            if existing is None:
                raise
            return existing, False

        logger.info("Published challenge %s for %s", challenge.id, publish_date)
        return challenge, True

    async def ensure_daily_challenge(self, today: date | None = None) -> ChallengeInstance:
        """Make sure today's challenge exists, publishing from the question bank if needed."""
        if today is None:
            today = datetime.now(timezone.utc).date()
        challenge, _created = await self.get_or_create_challenge(
            publish_date=today,
            title=f"Daily Civic Challenge: {today.isoformat()}",
            question_set=default_question_set(today),
            xp_reward=get_settings().daily_challenge_xp_reward,
        )
        return challenge

    # --- Fetching ---

    async def get_today(self, user: UserKey | None = None, today: date | None = None) -> dict | None:
        """Today's challenge with the requesting user's attempt status, if any."""
        if today is None:
            today = datetime.now(timezone.utc).date()
        challenge = await self.get_challenge_for_date(today)
        if challenge is None:
            return None

        attempt = None
        if user is not None:
            resolved = await resolve(self.db, user)
            result = await self.db.execute(
                select(ChallengeAttempt).where(
                    ChallengeAttempt.user_id == resolved.internal_id,
                    ChallengeAttempt.challenge_id == challenge.id,
                )
            )
            attempt = result.scalar_one_or_none()

        return {
            "id": challenge.id,
            "publish_date": challenge.publish_date,
            "title": challenge.title,
            "xp_reward": challenge.xp_reward,
            "questions": public_questions(challenge.question_set),
            "attempt": attempt,
        }

    # --- Attempts ---

    async def submit(
        self,
        user: UserKey,
        challenge_id: int,
        answers: list[dict[str, Any]],
        time_taken: int,
        now: datetime | None = None,
    ) -> AttemptResult:
        """Score and record the user's only attempt, then award the challenge XP.

        A second submission (sequential or concurrent) is rejected by the
        UNIQUE(user_id, challenge_id) constraint and raises AlreadyAttempted.
        """
        resolved = await resolve(self.db, user)
        if now is None:
            now = datetime.now(timezone.utc)

        challenge = await self.db.get(ChallengeInstance, challenge_id)
        if challenge is None:
            raise ChallengeNotFound(challenge_id)
        if challenge.publish_date > now.date():
            raise ChallengeNotAvailable(challenge_id)

        score, max_score = score_answers(challenge.question_set, answers)
        percentage = round(score / max_score * 100) if max_score else 0

        attempt = ChallengeAttempt(
            user_id=resolved.internal_id,
            user_public_id=resolved.public_id,
            challenge_id=challenge.id,
            score=score,
            max_score=max_score,
            time_taken=time_taken,
            answers=answers,
            completed_at=now,
        )
        try:
            async with self.db.begin_nested():
                self.db.add(attempt)
        except IntegrityError:
            raise AlreadyAttempted(challenge_id) from None

        result = await award(
            self.db,
            resolved.internal_id,
            SourceType.CHALLENGE,
            str(challenge.id),
            challenge.xp_reward,
            description="Completed daily challenge",
            now=now,
        )

        streak = await self.db.get(StreakRecord, resolved.internal_id)
        logger.info(
            "Challenge %s attempted by user %s: %d/%d",
            challenge.id, resolved.internal_id, score, max_score,
        )
        return AttemptResult(
            attempt_id=attempt.id,
            score=score,
            max_score=max_score,
            percentage=percentage,
            xp_earned=challenge.xp_reward if result.accepted else 0,
            new_streak=streak.current_streak if streak else 0,
        )

    async def challenge_leaderboard(self, challenge_id: int, limit: int = 100) -> list[dict]:
        """Attempts for one challenge, best score first, fastest breaking ties."""
        challenge = await self.db.get(ChallengeInstance, challenge_id)
        if challenge is None:
            raise ChallengeNotFound(challenge_id)

        result = await self.db.execute(
            select(ChallengeAttempt)
            .where(ChallengeAttempt.challenge_id == challenge_id)
            .order_by(
                ChallengeAttempt.score.desc(),
                ChallengeAttempt.time_taken.asc(),
                ChallengeAttempt.completed_at.asc(),
                ChallengeAttempt.id.asc(),
            )
            .limit(limit)
        )
        return [
            {
                "rank": i,
                "public_id": a.user_public_id,
                "score": a.score,
                "max_score": a.max_score,
                "time_taken": a.time_taken,
            }
            for i, a in enumerate(result.scalars().all(), start=1)
        ]
