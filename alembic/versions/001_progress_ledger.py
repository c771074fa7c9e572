"""Progress ledger tables.

Creates ledger_entries, progress_aggregates, streak_records,
challenge_instances, challenge_attempts, achievements and user_achievements.
``users`` belongs to the accounts service and is only created here when
missing (local development).

Revision ID: 001_progress_ledger
Revises: None
Create Date: 2026-10-19
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_progress_ledger"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Users (external, dual key) ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS users (
            id BIGSERIAL PRIMARY KEY,
            public_id VARCHAR(36) UNIQUE NOT NULL,
            nickname VARCHAR(64),
            created_at TIMESTAMPTZ DEFAULT NOW()
        )
    """)

    # --- Ledger ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS ledger_entries (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT REFERENCES users(id) ON DELETE RESTRICT,
            user_public_id VARCHAR(36),
            source_type VARCHAR(32) NOT NULL,
            reference_id VARCHAR(128) NOT NULL,
            amount INTEGER NOT NULL CONSTRAINT ck_ledger_entries_amount_nonzero CHECK (amount <> 0),
            description VARCHAR(256),
            reverses_entry_id BIGINT UNIQUE REFERENCES ledger_entries(id),
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    # Idempotency key: one positive entry per (user, source_type, reference_id)
    op.execute("""
        CREATE UNIQUE INDEX IF NOT EXISTS uq_ledger_entries_award
        ON ledger_entries(user_id, source_type, reference_id)
        WHERE amount > 0
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_ledger_entries_user_created
        ON ledger_entries(user_id, created_at)
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_ledger_entries_created
        ON ledger_entries(created_at)
    """)

    # --- Aggregates ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS progress_aggregates (
            user_id BIGINT PRIMARY KEY REFERENCES users(id) ON DELETE CASCADE,
            total_xp BIGINT NOT NULL DEFAULT 0,
            level INTEGER NOT NULL DEFAULT 1,
            modules_completed INTEGER NOT NULL DEFAULT 0,
            lessons_completed INTEGER NOT NULL DEFAULT 0,
            quizzes_passed INTEGER NOT NULL DEFAULT 0,
            achievements_earned INTEGER NOT NULL DEFAULT 0,
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS streak_records (
            user_id BIGINT PRIMARY KEY REFERENCES users(id) ON DELETE CASCADE,
            current_streak INTEGER NOT NULL DEFAULT 0,
            longest_streak INTEGER NOT NULL DEFAULT 0,
            last_activity_date DATE,
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)

    # --- Daily challenges ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS challenge_instances (
            id BIGSERIAL PRIMARY KEY,
            publish_date DATE UNIQUE NOT NULL,
            title VARCHAR(200) NOT NULL,
            question_set JSONB NOT NULL DEFAULT '[]',
            xp_reward INTEGER NOT NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS challenge_attempts (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT REFERENCES users(id) ON DELETE RESTRICT,
            user_public_id VARCHAR(36),
            challenge_id BIGINT NOT NULL REFERENCES challenge_instances(id),
            score INTEGER NOT NULL,
            max_score INTEGER NOT NULL,
            time_taken INTEGER NOT NULL,
            answers JSONB NOT NULL DEFAULT '[]',
            completed_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_challenge_attempts_user_challenge UNIQUE (user_id, challenge_id)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_challenge_attempts_challenge
        ON challenge_attempts(challenge_id)
    """)

    # --- Achievements ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS achievements (
            id SERIAL PRIMARY KEY,
            slug VARCHAR(64) UNIQUE NOT NULL,
            title VARCHAR(128) NOT NULL,
            description TEXT NOT NULL,
            criteria_type VARCHAR(32) NOT NULL,
            criteria_value INTEGER NOT NULL,
            xp_reward INTEGER NOT NULL,
            sort_order INTEGER NOT NULL DEFAULT 0
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_achievements (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT REFERENCES users(id) ON DELETE RESTRICT,
            user_public_id VARCHAR(36),
            achievement_id INTEGER NOT NULL REFERENCES achievements(id),
            earned_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_user_achievements_user_achievement UNIQUE (user_id, achievement_id)
        )
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS user_achievements")
    op.execute("DROP TABLE IF EXISTS achievements")
    op.execute("DROP TABLE IF EXISTS challenge_attempts")
    op.execute("DROP TABLE IF EXISTS challenge_instances")
    op.execute("DROP TABLE IF EXISTS streak_records")
    op.execute("DROP TABLE IF EXISTS progress_aggregates")
    op.execute("DROP TABLE IF EXISTS ledger_entries")
