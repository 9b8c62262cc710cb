# backend/tests/conftest.py
from collections.abc import AsyncGenerator
from datetime import UTC, datetime

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from clubguard.core.clock import ManualClock
from clubguard.core.config import RateLimitConfig
from clubguard.db.base import Base
from clubguard.services.rate_limiter import LoginRateLimiter
from clubguard.stores.memory import InMemoryAttemptStore

T0 = datetime(2024, 1, 1, 12, 0, 0, tzinfo=UTC)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(T0)


@pytest.fixture
def config() -> RateLimitConfig:
    return RateLimitConfig()


@pytest.fixture
def store() -> InMemoryAttemptStore:
    return InMemoryAttemptStore()


@pytest.fixture
def limiter(
    store: InMemoryAttemptStore, config: RateLimitConfig, clock: ManualClock
) -> LoginRateLimiter:
    return LoginRateLimiter(store, config, clock)


@pytest_asyncio.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """In-memory SQLite database with the attempt table created, per test."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
    finally:
        await engine.dispose()
