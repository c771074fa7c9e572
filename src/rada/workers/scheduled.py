"""Scheduled ledger jobs (arq worker).

Import path for arq CLI: arq rada.workers.scheduled.WorkerSettings
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from rada.challenges.challenge_service import ChallengeService
from rada.config import get_settings
from rada.database import close_db, get_session_factory, init_db
from rada.reconcile.reconcile_service import run_reconciliation

logger = logging.getLogger(__name__)


async def scheduled_startup(ctx: dict) -> None:  # type: ignore[type-arg]
    """Initialize the DB engine on worker startup."""
    settings = get_settings()
    await init_db(settings.database_url)
    ctx["session_factory"] = get_session_factory()
    logger.info("Scheduled ledger worker started")


async def scheduled_shutdown(ctx: dict) -> None:  # type: ignore[type-arg]
    await close_db()
    logger.info("Scheduled ledger worker shut down")


async def publish_daily_challenge(ctx: dict) -> int:  # type: ignore[type-arg]
    """Make sure today's (UTC) challenge exists. Returns its id."""
    async with ctx["session_factory"]() as db:
        challenge = await ChallengeService(db).ensure_daily_challenge(datetime.now(timezone.utc).date())
        await db.commit()
        return challenge.id


async def reconcile_ledger(ctx: dict) -> dict:  # type: ignore[type-arg]
    """Nightly reconciliation sweep. Commits per repair."""
    async with ctx["session_factory"]() as db:
        summary = await run_reconciliation(db)
    if summary.total_repairs or summary.orphans:
        logger.warning(
            "Reconciliation repaired %d rows, %d orphans need attention",
            summary.total_repairs, len(summary.orphans),
        )
    return summary.as_dict()


class WorkerSettings:
    """arq worker settings for scheduled ledger jobs."""

    functions = [publish_daily_challenge, reconcile_ledger]
    on_startup = scheduled_startup
    on_shutdown = scheduled_shutdown
    max_jobs = 2
    job_timeout = 1800  # a full sweep over a large ledger
    # cron_jobs configured at deploy time:
    # cron_jobs = [
    #     cron(publish_daily_challenge, hour=0, minute=0),  # 00:00 UTC
    #     cron(reconcile_ledger, hour=3, minute=30),
    # ]
