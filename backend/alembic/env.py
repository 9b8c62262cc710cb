# /backend/alembic/env.py
import asyncio
import logging
from logging.config import fileConfig

from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import create_async_engine

from alembic import context

# --- Alembic Config ---
config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

logger = logging.getLogger("alembic.env")

# --- Application Imports ---
# Importing clubguard.db.base registers every model on Base.metadata.
from clubguard.core.config import load_settings  # noqa: E402
from clubguard.db.base import Base  # noqa: E402

settings = load_settings()
target_metadata = Base.metadata


def _masked(url: str) -> str:
    if settings.POSTGRES_PASSWORD:
        return url.replace(settings.POSTGRES_PASSWORD, "****")
    return url


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode (uses a synchronous URL)."""
    sync_url = settings.SYNC_SQLALCHEMY_DATABASE_URL
    logger.info(f"Running migrations in OFFLINE mode using URL: {_masked(sync_url)}")

    context.configure(
        url=sync_url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
        render_as_batch=True,
    )

    with context.begin_transaction():
        context.run_migrations()
    logger.info("Offline migrations complete.")


def do_run_migrations(connection: Connection) -> None:
    """Configure the context for an online run and execute migrations."""
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        compare_type=True,
        render_as_batch=True,
    )
    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    """Run migrations in 'online' mode using an ASYNC engine."""
    async_url = settings.ASYNC_SQLALCHEMY_DATABASE_URL
    logger.info(f"Running migrations in ONLINE mode using URL: {_masked(async_url)}")
    connectable = create_async_engine(async_url, poolclass=pool.NullPool)

    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)

    await connectable.dispose()
    logger.info("Online migrations complete.")


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())
