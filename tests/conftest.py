"""
Pytest fixtures и конфигурация.
"""

import pytest
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from affiliate_engine.db.models import Base
from affiliate_engine.services.referrals import create_affiliate


@pytest.fixture
async def test_db():
    """In-memory SQLite для тестов"""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async_session_maker = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    yield async_session_maker

    await engine.dispose()


@pytest.fixture
async def session(test_db):
    async with test_db() as session:
        yield session


@pytest.fixture
async def affiliate(session):
    """Активный партнёр со ставкой 15%"""
    return await create_affiliate(session, "aff-user", code="PARTNER01", commission_rate=0.15)
