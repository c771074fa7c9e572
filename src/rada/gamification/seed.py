"""Achievement seed data: learning milestones from the civic-education hub."""

from __future__ import annotations

import logging

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from rada.db.models import Achievement

logger = logging.getLogger(__name__)

ACHIEVEMENT_SEED_DATA: list[dict] = [
    {
        "slug": "first_lesson",
        "title": "First Steps",
        "description": "Complete your first civic-education lesson",
        "criteria_type": "lessons_completed",
        "criteria_value": 1,
        "xp_reward": 10,
        "sort_order": 1,
    },
    {
        "slug": "lessons_10",
        "title": "Knowledge Seeker",
        "description": "Complete 10 lessons",
        "criteria_type": "lessons_completed",
        "criteria_value": 10,
        "xp_reward": 50,
        "sort_order": 2,
    },
    {
        "slug": "first_quiz",
        "title": "Quiz Taker",
        "description": "Pass your first quiz",
        "criteria_type": "quizzes_passed",
        "criteria_value": 1,
        "xp_reward": 10,
        "sort_order": 3,
    },
    {
        "slug": "quizzes_10",
        "title": "Quiz Master",
        "description": "Pass 10 quizzes",
        "criteria_type": "quizzes_passed",
        "criteria_value": 10,
        "xp_reward": 75,
        "sort_order": 4,
    },
    {
        "slug": "first_module",
        "title": "Module Graduate",
        "description": "Complete a full learning module",
        "criteria_type": "modules_completed",
        "criteria_value": 1,
        "xp_reward": 25,
        "sort_order": 5,
    },
    {
        "slug": "modules_5",
        "title": "Constitution Scholar",
        "description": "Complete 5 learning modules",
        "criteria_type": "modules_completed",
        "criteria_value": 5,
        "xp_reward": 100,
        "sort_order": 6,
    },
    {
        "slug": "streak_7",
        "title": "Week of Learning",
        "description": "Stay active 7 days in a row",
        "criteria_type": "streak_days",
        "criteria_value": 7,
        "xp_reward": 50,
        "sort_order": 7,
    },
    {
        "slug": "streak_30",
        "title": "Unstoppable Citizen",
        "description": "Stay active 30 days in a row",
        "criteria_type": "streak_days",
        "criteria_value": 30,
        "xp_reward": 200,
        "sort_order": 8,
    },
    {
        "slug": "xp_1000",
        "title": "Rising Voice",
        "description": "Earn 1,000 XP",
        "criteria_type": "total_xp",
        "criteria_value": 1000,
        "xp_reward": 50,
        "sort_order": 9,
    },
]


async def seed_achievements(db: AsyncSession) -> int:
    """Upsert all achievement definitions. Returns number seeded."""
    insert = pg_insert if db.get_bind().dialect.name == "postgresql" else sqlite_insert

    seeded = 0
    for data in ACHIEVEMENT_SEED_DATA:
        stmt = insert(Achievement).values(**data)
        stmt = stmt.on_conflict_do_update(
            index_elements=["slug"],
            set_={
                "title": stmt.excluded.title,
                "description": stmt.excluded.description,
                "criteria_type": stmt.excluded.criteria_type,
                "criteria_value": stmt.excluded.criteria_value,
                "xp_reward": stmt.excluded.xp_reward,
                "sort_order": stmt.excluded.sort_order,
            },
        )
        await db.execute(stmt)
        seeded += 1

    await db.commit()
    logger.info("Seeded %d achievement definitions", seeded)
    return seeded
