# backend/clubguard/db/models/login_attempt.py
"""
Model for the club sign-in attempt log.
"""

from datetime import UTC, datetime

from sqlalchemy import Boolean, DateTime, Index, Integer, String
from sqlalchemy.engine import Dialect
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from clubguard.db.base_class import Base
from clubguard.stores.base import AttemptRecord


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware UTC timestamp on every backend.

    Values are converted to UTC before binding; naive values read back (SQLite
    drops the offset) are marked as UTC.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError("UTCDateTime requires timezone-aware datetimes")
        value = value.astimezone(UTC)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


class ClubLoginAttempt(Base):
    """
    One sign-in attempt against a club (tenant) account.

    Rows are append-only and deleted once older than the retention horizon.
    The client address is stored only in anonymized form.
    """

    __tablename__ = "club_login_attempts"

    # Surrogate key; also breaks ties between attempts with equal timestamps
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Null until the credentials resolve to a tenant
    tenant_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Case-normalized email or username being tried
    account_identifier: Mapped[str] = mapped_column(String(255), nullable=False)

    # Anonymized source address; null means unknown/untrusted source
    anonymized_address: Mapped[str | None] = mapped_column(String(255), nullable=True)

    success: Mapped[bool] = mapped_column(Boolean, nullable=False)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    __table_args__ = (
        Index("ix_club_login_attempts_account_created", "account_identifier", "created_at"),
        Index("ix_club_login_attempts_address_created", "anonymized_address", "created_at"),
        Index("ix_club_login_attempts_created_at", "created_at"),
    )

    @classmethod
    def from_record(cls, record: AttemptRecord) -> "ClubLoginAttempt":
        return cls(
            tenant_id=record.tenant_id,
            account_identifier=record.account_identifier,
            anonymized_address=record.anonymized_address,
            success=record.success,
            created_at=record.created_at,
        )

    def to_record(self) -> AttemptRecord:
        return AttemptRecord(
            account_identifier=self.account_identifier,
            success=self.success,
            created_at=self.created_at,
            anonymized_address=self.anonymized_address,
            tenant_id=self.tenant_id,
        )

    def __repr__(self) -> str:
        return (
            f"<ClubLoginAttempt(account={self.account_identifier}, "
            f"address={self.anonymized_address}, success={self.success})>"
        )
