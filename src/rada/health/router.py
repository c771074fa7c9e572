"""Health, readiness, and version endpoints."""

from fastapi import APIRouter, Depends
from sqlalchemy import select, text
from sqlalchemy.ext.asyncio import AsyncSession

from rada.config import get_settings
from rada.database import get_session
from rada.db.models import Achievement
from rada.redis_client import get_redis

router = APIRouter()


@router.get("/health")
async def health() -> dict[str, str]:
    """Liveness check: 200 while the process is up."""
    return {"status": "healthy"}


@router.get("/ready")
async def readiness(
    db: AsyncSession = Depends(get_session),  # noqa: B008
) -> dict[str, object]:
    """Readiness check: database, schema and Redis."""
    checks: dict[str, object] = {}

    try:
        result = await db.execute(text("SELECT 1"))
        result.scalar()
        checks["database"] = "ok"
    except Exception as exc:
        checks["database"] = f"error: {exc}"

    # Achievements are seeded at startup; none means migrations have not run
    try:
        seeded = await db.execute(select(Achievement.id).limit(1))
        checks["schema"] = "ok" if seeded.first() is not None else "error: achievements not seeded"
    except Exception as exc:
        checks["schema"] = f"error: {exc}"

    try:
        redis = get_redis()
        await redis.ping()
        checks["redis"] = "ok"
    except Exception as exc:
        checks["redis"] = f"error: {exc}"

    all_ok = all(v == "ok" for v in checks.values())
    return {"status": "ready" if all_ok else "degraded", "checks": checks}


@router.get("/version")
async def version() -> dict[str, str]:
    """Return API version, environment and active level curve."""
    settings = get_settings()
    return {
        "version": settings.app_version,
        "environment": settings.environment,
        "level_curve": settings.level_curve_version,
    }
