"""Pydantic models for daily challenge endpoints."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, Field, field_validator


class ChallengeQuestion(BaseModel):
    id: int | str
    prompt: str
    options: list[str]


class AdminChallengeQuestion(ChallengeQuestion):
    correct_index: int = Field(ge=0)


class AttemptStatus(BaseModel):
    completed: bool = False
    score: int | None = None
    max_score: int | None = None
    time_taken: int | None = None
    completed_at: datetime | None = None


class TodayChallengeResponse(BaseModel):
    id: int
    publish_date: date
    title: str
    xp_reward: int
    questions: list[ChallengeQuestion]
    attempt: AttemptStatus = AttemptStatus()


class AnswerItem(BaseModel):
    question_id: int | str
    selected_index: int


class AttemptRequest(BaseModel):
    user: int | str
    answers: list[AnswerItem]
    time_taken: int = Field(ge=0)


class AttemptResponse(BaseModel):
    attempt_id: int
    score: int
    max_score: int
    percentage: int
    xp_earned: int
    new_streak: int


class ChallengeLeaderboardEntry(BaseModel):
    rank: int
    public_id: str | None
    score: int
    max_score: int
    time_taken: int


class ChallengeLeaderboardResponse(BaseModel):
    challenge_id: int
    entries: list[ChallengeLeaderboardEntry]


class PublishChallengeRequest(BaseModel):
    publish_date: date
    title: str = Field(min_length=1, max_length=200)
    questions: list[AdminChallengeQuestion] = Field(min_length=1)
    xp_reward: int | None = Field(default=None, gt=0)

    @field_validator("questions")
    @classmethod
    def unique_question_ids(cls, v: list[AdminChallengeQuestion]) -> list[AdminChallengeQuestion]:
        """Answers are matched to questions by id, so ids must not repeat."""
        ids = [str(q.id) for q in v]
        if len(set(ids)) != len(ids):
            raise ValueError("question ids must be unique")
        return v


class PublishChallengeResponse(BaseModel):
    id: int
    publish_date: date
    title: str
    xp_reward: int
    created: bool
