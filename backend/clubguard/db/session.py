# backend/clubguard/db/session.py
import logging

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from clubguard.core.config import Settings

logger = logging.getLogger(__name__)

async_engine: AsyncEngine | None = None
AsyncSessionLocal: async_sessionmaker[AsyncSession] | None = None


def init_engine(settings: Settings) -> async_sessionmaker[AsyncSession]:
    """
    Initialize the shared async engine and session maker.

    Safe to call more than once; later calls return the existing session maker.
    """
    global async_engine, AsyncSessionLocal

    if AsyncSessionLocal is not None:
        logger.info("Attempt store: asynchronous database resources already initialized.")
        return AsyncSessionLocal

    db_url = settings.ASYNC_SQLALCHEMY_DATABASE_URL
    if not db_url:
        raise RuntimeError("ASYNC_SQLALCHEMY_DATABASE_URL is empty after computation.")

    try:
        engine = create_async_engine(db_url, pool_pre_ping=True, echo=settings.DB_ECHO)
    except Exception as e:
        logger.critical(f"Failed to initialize asynchronous database engine: {e}", exc_info=True)
        raise RuntimeError(f"Failed to initialize asynchronous database engine: {e}") from e

    async_engine = engine
    AsyncSessionLocal = async_sessionmaker(
        bind=engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        class_=AsyncSession,
    )
    logger.info(
        f"Attempt store: asynchronous engine ({db_url.split('@')[-1]}) configured successfully."
    )
    return AsyncSessionLocal


async def dispose_engine() -> None:
    """Dispose the shared engine (application shutdown)."""
    global async_engine, AsyncSessionLocal

    if async_engine is not None:
        await async_engine.dispose()
        logger.info("Attempt store: asynchronous database engine disposed.")
    async_engine = None
    AsyncSessionLocal = None


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    if AsyncSessionLocal is None:
        logger.critical("Attempt store: AsyncSessionLocal is not initialized.")
        raise RuntimeError(
            "Attempt store: AsyncSessionLocal is not initialized. Call init_engine() first."
        )
    return AsyncSessionLocal
