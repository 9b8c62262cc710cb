# backend/clubguard/bootstrap.py
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from clubguard.api.deps import install_rate_limiter
from clubguard.core.clock import SystemClock
from clubguard.core.config import Settings, get_settings
from clubguard.core.logging_config import setup_logging
from clubguard.db.session import dispose_engine, get_session_factory, init_engine
from clubguard.services.rate_limiter import LoginRateLimiter
from clubguard.stores.sqlalchemy import SQLAlchemyAttemptStore

logger = logging.getLogger(__name__)


def create_rate_limiter(settings: Settings) -> LoginRateLimiter:
    """Build the production limiter: database-backed store, system clock."""
    config = settings.rate_limit_config()
    init_engine(settings)
    return LoginRateLimiter(SQLAlchemyAttemptStore(get_session_factory()), config, SystemClock())


@asynccontextmanager
async def rate_limiter_lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Lifespan hook for applications that host a login endpoint.

    Loads and validates configuration (aborting startup on bad values),
    configures logging, and installs the limiter on the app.
    """
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL, settings.SECURITY_LOG_PATH)

    limiter = create_rate_limiter(settings)
    install_rate_limiter(app, limiter)
    logger.info(
        "LIFESPAN_HOOK: Login rate limiter installed "
        f"(account={limiter.config.max_attempts_per_account}, "
        f"address={limiter.config.max_attempts_per_address}, window={limiter.config.window})."
    )
    try:
        yield
    finally:
        await dispose_engine()
        logger.info("LIFESPAN_HOOK: Login rate limiter resources disposed.")
