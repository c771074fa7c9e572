"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from rada.admin.router import router as admin_router
from rada.challenges.router import router as challenges_router
from rada.config import get_settings
from rada.database import close_db, get_session_factory, init_db
from rada.gamification.router import router as progress_router
from rada.gamification.seed import seed_achievements
from rada.health.router import router as health_router
from rada.leaderboard.router import router as leaderboard_router
from rada.middleware import setup_middleware
from rada.redis_client import close_redis, init_redis

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    await init_redis(settings.redis_url)

    # Seed achievement definitions (idempotent)
    try:
        async with get_session_factory()() as db:
            await seed_achievements(db)
    except Exception:
        logger.warning("Achievement seeding failed (tables may not exist yet)", exc_info=True)

    yield

    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Rada Progress API",
        description="XP ledger, streaks, daily challenges and leaderboards for the Rada civic platform",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(progress_router)
    app.include_router(leaderboard_router)
    app.include_router(challenges_router)
    app.include_router(admin_router)

    return app


app = create_app()
