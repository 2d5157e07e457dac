"""
Асинхронная сессия SQLAlchemy и транзакционная граница для операций над балансами.
"""

import functools

from sqlalchemy.ext.asyncio import (
    create_async_engine,
    AsyncSession,
    async_sessionmaker,
)
from sqlalchemy.pool import NullPool
from affiliate_engine.config import get_settings
from affiliate_engine.services.errors import LedgerConflict, TransientLedgerError
import logging

log = logging.getLogger("db")
settings = get_settings()

# Создаём асинхронный движок
engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    pool_pre_ping=True,
    poolclass=NullPool,
)

# Фабрика сессий
SessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


async def get_session() -> AsyncSession:
    """Dependency для FastAPI"""
    async with SessionLocal() as session:
        yield session


async def init_db():
    """Создание таблиц (для dev/sqlite; в проде — alembic)"""
    from affiliate_engine.db.models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    log.info("✅ Таблицы БД созданы/обновлены")


def transactional(retries: int = 1):
    """
    Обёртка для use-case вида `async def fn(session, ...)`.

    Одна попытка = одна транзакция: commit при успехе, rollback при любой ошибке.
    LedgerConflict (проигранный compare-and-swap) повторяется `retries` раз,
    затем превращается в TransientLedgerError.
    """

    def decorator(func):
        @functools.wraps(func)
        async def wrapper(session: AsyncSession, *args, **kwargs):
            attempt = 0
            while True:
                try:
                    result = await func(session, *args, **kwargs)
                    await session.commit()
                    return result
                except LedgerConflict as e:
                    await session.rollback()
                    session.expunge_all()
                    if attempt >= retries:
                        log.error(f"Конфликт при изменении баланса, попытки исчерпаны: {func.__name__}: {e}")
                        raise TransientLedgerError(str(e)) from e
                    attempt += 1
                    log.warning(f"Конфликт при изменении баланса, повтор {attempt}: {func.__name__}: {e}")
                except Exception:
                    await session.rollback()
                    raise

        return wrapper

    return decorator
