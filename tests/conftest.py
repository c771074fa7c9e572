"""Shared test fixtures.

The suite runs against an in-memory SQLite database (aiosqlite) built from
the ORM metadata, so no Postgres or Redis is needed. The engine uses a single
shared connection: tests commit their setup before calling the HTTP client.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import AsyncGenerator
from datetime import datetime, timezone

os.environ["RADA_DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["RADA_ADMIN_TOKEN"] = "test-admin-token"
os.environ["RADA_LOG_FORMAT"] = "console"
os.environ["RADA_LEVEL_CURVE_VERSION"] = "v2"

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker  # noqa: E402

from rada.config import get_settings  # noqa: E402
from rada.database import build_engine, get_session  # noqa: E402
from rada.db.base import Base  # noqa: E402
from rada.db.models import User  # noqa: E402
from rada.gamification.seed import seed_achievements  # noqa: E402

get_settings.cache_clear()


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Fresh in-memory database per test."""
    eng = build_engine(get_settings().database_url)
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Direct database session for service calls and assertions."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def achievements(db_session: AsyncSession) -> AsyncSession:
    """Session with achievement definitions seeded."""
    await seed_achievements(db_session)
    return db_session


@pytest_asyncio.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client over the app with get_session bound to the test database.

    ASGITransport does not run the lifespan, so Redis stays uninitialised:
    rate limiting is bypassed and the leaderboard reads without a cache.
    """
    from rada.main import create_app

    app = create_app()

    async def _session_override() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = _session_override

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


async def make_user(db: AsyncSession, nickname: str | None = None, commit: bool = True) -> User:
    """Insert a user with both keys assigned."""
    user = User(
        public_id=str(uuid.uuid4()),
        nickname=nickname,
        created_at=datetime.now(timezone.utc),
    )
    db.add(user)
    await db.flush()
    if commit:
        await db.commit()
    return user


@pytest.fixture
def user_factory():
    """``await user_factory(db, nickname)`` creates and commits a user."""
    return make_user
