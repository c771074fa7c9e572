"""ORM models for the progress ledger.

``users`` is owned by the accounts service; it is mapped here read-only so
the identity resolver can translate between the two key spaces. Every other
table is owned by this service.
"""

from __future__ import annotations

import enum
from datetime import date, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rada.db.base import Base, BigIntPK

JSONDocument = JSON().with_variant(JSONB(), "postgresql")


class SourceType(str, enum.Enum):
    """What earned the XP. Stored as its string value."""

    LESSON = "lesson"
    QUIZ = "quiz"
    MODULE = "module"
    DISCUSSION_POST = "discussion_post"
    DISCUSSION_REPLY = "discussion_reply"
    LIKE = "like"
    CHALLENGE = "challenge"
    ACHIEVEMENT = "achievement"
    MANUAL_ADJUSTMENT = "manual_adjustment"


# ---------------------------------------------------------------------------
# Users (external)
# ---------------------------------------------------------------------------


class User(Base):
    """Maps to the 'users' table. Both keys are assigned at creation and never change."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    public_id: Mapped[str] = mapped_column(String(36), unique=True, nullable=False)
    nickname: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------


class LedgerEntry(Base):
    """Append-only XP fact. Reversals are new rows with a negated amount."""

    __tablename__ = "ledger_entries"
    __table_args__ = (
        # At most one positive entry per (user, source_type, reference_id).
        Index(
            "uq_ledger_entries_award",
            "user_id",
            "source_type",
            "reference_id",
            unique=True,
            postgresql_where=text("amount > 0"),
            sqlite_where=text("amount > 0"),
        ),
        CheckConstraint("amount <> 0", name="ck_ledger_entries_amount_nonzero"),
        Index("idx_ledger_entries_user_created", "user_id", "created_at"),
        Index("idx_ledger_entries_created", "created_at"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="RESTRICT"), nullable=True
    )
    user_public_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    source_type: Mapped[str] = mapped_column(String(32), nullable=False)
    reference_id: Mapped[str] = mapped_column(String(128), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str | None] = mapped_column(String(256), nullable=True)
    reverses_entry_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("ledger_entries.id"), unique=True, nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    @property
    def is_reversal(self) -> bool:
        return self.reverses_entry_id is not None


class ProgressAggregate(Base):
    """Per-user running totals. A cache of the ledger, rebuildable at any time."""

    __tablename__ = "progress_aggregates"

    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    total_xp: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0, server_default="0")
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1")
    modules_completed: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    lessons_completed: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    quizzes_passed: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    achievements_earned: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class StreakRecord(Base):
    """Daily activity streak derived from distinct ledger dates."""

    __tablename__ = "streak_records"

    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    current_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    longest_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    last_activity_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


# ---------------------------------------------------------------------------
# Daily challenges
# ---------------------------------------------------------------------------


class ChallengeInstance(Base):
    """One published challenge per calendar day."""

    __tablename__ = "challenge_instances"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    publish_date: Mapped[date] = mapped_column(Date, unique=True, nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    question_set: Mapped[list[dict[str, Any]]] = mapped_column(JSONDocument, nullable=False)
    xp_reward: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class ChallengeAttempt(Base):
    """A user's single scored submission. UNIQUE(user_id, challenge_id)."""

    __tablename__ = "challenge_attempts"
    __table_args__ = (
        UniqueConstraint("user_id", "challenge_id", name="uq_challenge_attempts_user_challenge"),
        Index("idx_challenge_attempts_challenge", "challenge_id"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="RESTRICT"), nullable=True
    )
    user_public_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    challenge_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("challenge_instances.id"), nullable=False
    )
    score: Mapped[int] = mapped_column(Integer, nullable=False)
    max_score: Mapped[int] = mapped_column(Integer, nullable=False)
    time_taken: Mapped[int] = mapped_column(Integer, nullable=False)
    answers: Mapped[list[dict[str, Any]]] = mapped_column(JSONDocument, nullable=False)
    completed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


# ---------------------------------------------------------------------------
# Achievements
# ---------------------------------------------------------------------------


class Achievement(Base):
    """Achievement definitions, seeded on startup."""

    __tablename__ = "achievements"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    slug: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    title: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    criteria_type: Mapped[str] = mapped_column(String(32), nullable=False)
    criteria_value: Mapped[int] = mapped_column(Integer, nullable=False)
    xp_reward: Mapped[int] = mapped_column(Integer, nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")


class UserAchievement(Base):
    """Achievements earned by users. UNIQUE(user_id, achievement_id)."""

    __tablename__ = "user_achievements"
    __table_args__ = (
        UniqueConstraint("user_id", "achievement_id", name="uq_user_achievements_user_achievement"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="RESTRICT"), nullable=True
    )
    user_public_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    achievement_id: Mapped[int] = mapped_column(Integer, ForeignKey("achievements.id"), nullable=False)
    earned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    achievement: Mapped[Achievement] = relationship("Achievement", lazy="joined")
