# backend/clubguard/stores/sqlalchemy.py
import logging
from collections.abc import Sequence
from datetime import datetime

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from clubguard.db.models.login_attempt import ClubLoginAttempt
from clubguard.exceptions import StoreTimeoutError, StoreUnavailableError
from clubguard.stores.base import AttemptRecord, AttemptStore

logger = logging.getLogger(__name__)


class SQLAlchemyAttemptStore(AttemptStore):
    """
    Attempt store backed by the `club_login_attempts` table.

    Each operation runs in its own short session so concurrent requests only
    coordinate through the database. Driver and pool failures are raised as
    `StoreUnavailableError` (`StoreTimeoutError` for pool timeouts).
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    def _wrap(self, operation: str, exc: SQLAlchemyError) -> StoreUnavailableError:
        if isinstance(exc, PoolTimeoutError):
            return StoreTimeoutError(operation)
        return StoreUnavailableError(operation, f"Attempt store failed during '{operation}': {exc}")

    async def insert(self, record: AttemptRecord) -> None:
        try:
            async with self._session_factory() as session:
                session.add(ClubLoginAttempt.from_record(record))
                await session.commit()
        except SQLAlchemyError as e:
            raise self._wrap("insert", e) from e

    async def list_by_account(
        self, account_identifier: str, since: datetime, limit: int
    ) -> Sequence[AttemptRecord]:
        if limit <= 0:
            return []
        stmt = (
            select(ClubLoginAttempt)
            .where(
                ClubLoginAttempt.account_identifier == account_identifier,
                ClubLoginAttempt.created_at >= since,
            )
            .order_by(ClubLoginAttempt.created_at.desc(), ClubLoginAttempt.id.desc())
            .limit(limit)
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return [row.to_record() for row in result.scalars().all()]
        except SQLAlchemyError as e:
            raise self._wrap("list_by_account", e) from e

    async def count_failures_by_address(self, anonymized_address: str, since: datetime) -> int:
        stmt = select(func.count(ClubLoginAttempt.id)).where(
            ClubLoginAttempt.anonymized_address == anonymized_address,
            ClubLoginAttempt.success.is_(False),
            ClubLoginAttempt.created_at >= since,
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return int(result.scalar() or 0)
        except SQLAlchemyError as e:
            raise self._wrap("count_failures_by_address", e) from e

    async def list_by_account_oldest_first(
        self, account_identifier: str, since: datetime
    ) -> Sequence[AttemptRecord]:
        stmt = (
            select(ClubLoginAttempt)
            .where(
                ClubLoginAttempt.account_identifier == account_identifier,
                ClubLoginAttempt.created_at >= since,
            )
            .order_by(ClubLoginAttempt.created_at.asc(), ClubLoginAttempt.id.asc())
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return [row.to_record() for row in result.scalars().all()]
        except SQLAlchemyError as e:
            raise self._wrap("list_by_account_oldest_first", e) from e

    async def purge_older_than(self, cutoff: datetime) -> int:
        stmt = delete(ClubLoginAttempt).where(ClubLoginAttempt.created_at < cutoff)
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                await session.commit()
        except SQLAlchemyError as e:
            raise self._wrap("purge_older_than", e) from e
        deleted = result.rowcount or 0
        if deleted:
            logger.debug(f"Purged {deleted} login attempt(s) older than {cutoff.isoformat()}.")
        return deleted
