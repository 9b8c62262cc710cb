# backend/clubguard/stores/memory.py
from collections.abc import Sequence
from datetime import datetime

from clubguard.stores.base import AttemptRecord, AttemptStore


class InMemoryAttemptStore(AttemptStore):
    """
    Reference adapter keeping attempts in a process-local list.

    Suitable for tests and single-process deployments. Each operation runs
    without suspending, so it is atomic with respect to other coroutines on
    the same event loop.
    """

    def __init__(self):
        self._rows: list[tuple[int, AttemptRecord]] = []
        self._next_seq = 0

    def __len__(self) -> int:
        return len(self._rows)

    @property
    def records(self) -> list[AttemptRecord]:
        """Snapshot of stored attempts in insertion order."""
        return [record for _, record in self._rows]

    async def insert(self, record: AttemptRecord) -> None:
        self._rows.append((self._next_seq, record))
        self._next_seq += 1

    def _ordered(self, account_identifier: str, since: datetime) -> list[AttemptRecord]:
        matching = [
            (seq, record)
            for seq, record in self._rows
            if record.account_identifier == account_identifier and record.created_at >= since
        ]
        matching.sort(key=lambda row: (row[1].created_at, row[0]))
        return [record for _, record in matching]

    async def list_by_account(
        self, account_identifier: str, since: datetime, limit: int
    ) -> Sequence[AttemptRecord]:
        if limit <= 0:
            return []
        return list(reversed(self._ordered(account_identifier, since)))[:limit]

    async def count_failures_by_address(self, anonymized_address: str, since: datetime) -> int:
        return sum(
            1
            for _, record in self._rows
            if not record.success
            and record.anonymized_address == anonymized_address
            and record.created_at >= since
        )

    async def list_by_account_oldest_first(
        self, account_identifier: str, since: datetime
    ) -> Sequence[AttemptRecord]:
        return self._ordered(account_identifier, since)

    async def purge_older_than(self, cutoff: datetime) -> int:
        before = len(self._rows)
        self._rows = [(seq, record) for seq, record in self._rows if record.created_at >= cutoff]
        return before - len(self._rows)
