"""Redis connections: the API's shared pool and standalone worker clients."""

import redis.asyncio as redis

_pool: redis.Redis | None = None


def build_redis(url: str, max_connections: int = 50) -> redis.Redis:
    """Client with string decoding; stream fields and cached pages are text."""
    return redis.from_url(  # type: ignore[no-untyped-call]
        url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=max_connections,
    )


async def init_redis(url: str) -> None:
    """Create the pool used by rate limiting, readiness and the leaderboard cache."""
    global _pool  # noqa: PLW0603
    _pool = build_redis(url)


async def close_redis() -> None:
    global _pool  # noqa: PLW0603
    if _pool:
        await _pool.aclose()
        _pool = None


def get_redis() -> redis.Redis:
    """Get the pool. Raises RuntimeError before ``init_redis``."""
    if _pool is None:
        msg = "Redis not initialized. Call init_redis() first."
        raise RuntimeError(msg)
    return _pool


def get_optional_redis() -> redis.Redis | None:
    """FastAPI dependency for read caches: None when Redis is not configured."""
    return _pool
