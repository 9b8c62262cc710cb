# backend/clubguard/stores/base.py
from abc import ABC, abstractmethod
from collections.abc import Sequence
from datetime import datetime
from typing import NamedTuple


class AttemptRecord(NamedTuple):
    """One stored sign-in attempt. Immutable once inserted."""

    account_identifier: str
    success: bool
    created_at: datetime
    anonymized_address: str | None = None
    tenant_id: str | None = None


class AttemptStore(ABC):
    """
    Append-and-query interface over the login attempt table.

    Adapters own their locking and transactions; the engine only needs an
    atomic single-row insert. Orderings are by `created_at`, ties broken by
    insertion order. Backend failures surface as `StoreUnavailableError`.
    """

    @abstractmethod
    async def insert(self, record: AttemptRecord) -> None:
        """Append one attempt."""

    @abstractmethod
    async def list_by_account(
        self, account_identifier: str, since: datetime, limit: int
    ) -> Sequence[AttemptRecord]:
        """Attempts for the account with `created_at >= since`, newest first, at most `limit`."""

    @abstractmethod
    async def count_failures_by_address(self, anonymized_address: str, since: datetime) -> int:
        """Failed attempts from the address with `created_at >= since`."""

    @abstractmethod
    async def list_by_account_oldest_first(
        self, account_identifier: str, since: datetime
    ) -> Sequence[AttemptRecord]:
        """Every attempt for the account with `created_at >= since`, oldest first."""

    @abstractmethod
    async def purge_older_than(self, cutoff: datetime) -> int:
        """Delete attempts with `created_at < cutoff`; returns how many were removed."""
