# backend/clubguard/services/rate_limiter.py
"""
Sign-in rate limiter for club (tenant) accounts.

Implements:
- Address gate: too many failures from one anonymized address -> deny
- Account gate: too many recent failures for one account -> lockout
- Progressive lockout: repeated lockouts within a day grow geometrically,
  capped at the configured maximum, and stay enforced until they expire
Attempts are kept in an `AttemptStore`; the limiter itself holds no state
between requests.
"""

import asyncio
import logging
import math
from collections.abc import Awaitable
from datetime import datetime, timedelta
from enum import StrEnum
from typing import NamedTuple, TypeVar

from clubguard.core.clock import Clock, SystemClock
from clubguard.core.config import RateLimitConfig
from clubguard.core.network import anonymize_address
from clubguard.exceptions import (
    RATE_LIMITED_ACCOUNT,
    RATE_LIMITED_ADDRESS,
    RATE_LIMITED_PROGRESSIVE,
    InvalidAccountError,
    StoreError,
    StoreTimeoutError,
)
from clubguard.services.lockout_policy import replay_lockouts
from clubguard.stores.base import AttemptRecord, AttemptStore

logger = logging.getLogger(__name__)

# Lockouts are replayed from this trailing period of the attempt log
EPISODE_LOOKBACK = timedelta(hours=24)

T = TypeVar("T")


class LockoutReason(StrEnum):
    ACCOUNT = "account"
    ADDRESS = "address"
    PROGRESSIVE = "progressive"


_ERROR_CODES = {
    LockoutReason.ACCOUNT: RATE_LIMITED_ACCOUNT,
    LockoutReason.ADDRESS: RATE_LIMITED_ADDRESS,
    LockoutReason.PROGRESSIVE: RATE_LIMITED_PROGRESSIVE,
}


class LockoutDecision(NamedTuple):
    """Result of a rate limit check. A denial is a value, never an exception."""

    allowed: bool
    remaining_attempts: int
    locked_until: datetime | None = None
    reason: LockoutReason | None = None

    @property
    def error_code(self) -> str | None:
        """Error code the login handler reports for a denial."""
        if self.allowed or self.reason is None:
            return None
        return _ERROR_CODES[self.reason]

    def retry_after(self, now: datetime, fallback: timedelta | None = None) -> int | None:
        """
        Whole seconds a denied client should wait (for the Retry-After header).

        Address denials carry no `locked_until`; `fallback` (usually the
        window length) is used for them.
        """
        if self.allowed:
            return None
        if self.locked_until is not None:
            return max(1, math.ceil((self.locked_until - now).total_seconds()))
        if fallback is not None:
            return max(1, math.ceil(fallback.total_seconds()))
        return None


def normalize_account_identifier(value: str) -> str:
    """Lowercase and trim an email/username before it is rate limited."""
    return value.strip().lower()


def deadline_in(seconds: float) -> float:
    """Event loop deadline `seconds` from now, for `check`/`record`."""
    return asyncio.get_running_loop().time() + seconds


class LoginRateLimiter:
    """
    Decides whether a sign-in may proceed and records its outcome.

    Usage from a login handler:
        decision = await limiter.check(account, address, deadline)
        ... verify credentials ...
        await limiter.record(account, tenant_id, address, success, deadline)

    `deadline` is an absolute `loop.time()` value (see `deadline_in`); store
    calls still running at the deadline raise `StoreTimeoutError`. Store
    failures propagate and must never be treated as "allow".
    """

    def __init__(
        self,
        store: AttemptStore,
        config: RateLimitConfig | None = None,
        clock: Clock | None = None,
    ):
        self.store = store
        self.config = config or RateLimitConfig()
        self.clock = clock or SystemClock()

    async def _call_store(self, awaitable: Awaitable[T], deadline: float | None, operation: str) -> T:
        try:
            async with asyncio.timeout_at(deadline):
                return await awaitable
        except TimeoutError as e:
            raise StoreTimeoutError(operation) from e

    @staticmethod
    def _require_account(account_identifier: str) -> None:
        if not account_identifier or not account_identifier.strip():
            raise InvalidAccountError("account identifier must be a non-empty string")

    async def check(
        self,
        account_identifier: str,
        address: str | None,
        deadline: float | None = None,
    ) -> LockoutDecision:
        """
        Decide whether a sign-in for `account_identifier` from `address` may proceed.

        Args:
            account_identifier: Case-normalized account email/username.
            address: Raw client address (anonymized before any lookup).
            deadline: Optional event loop deadline for the store reads.

        Returns:
            LockoutDecision; `allowed=False` carries the reason and, for
            account lockouts, the instant the lockout ends.
        """
        self._require_account(account_identifier)
        config = self.config
        now = self.clock.now()
        window_start = now - config.window
        anonymized = anonymize_address(address)

        if anonymized is not None:
            address_failures = await self._call_store(
                self.store.count_failures_by_address(anonymized, window_start),
                deadline,
                "count_failures_by_address",
            )
            if address_failures >= config.max_attempts_per_address:
                return LockoutDecision(
                    allowed=False, remaining_attempts=0, reason=LockoutReason.ADDRESS
                )

        recent = await self._call_store(
            self.store.list_by_account(
                account_identifier, window_start, config.account_fetch_limit
            ),
            deadline,
            "list_by_account",
        )
        recent_failures = sum(1 for attempt in recent if not attempt.success)

        # Lockouts outlive the window, so they are rebuilt from the day's log
        day = await self._call_store(
            self.store.list_by_account_oldest_first(account_identifier, now - EPISODE_LOOKBACK),
            deadline,
            "list_by_account_oldest_first",
        )
        episodes = replay_lockouts(day, config)
        if episodes and now < episodes[-1].locked_until:
            latest = episodes[-1]
            return LockoutDecision(
                allowed=False,
                remaining_attempts=0,
                locked_until=latest.locked_until,
                reason=LockoutReason.PROGRESSIVE if latest.ordinal > 1 else LockoutReason.ACCOUNT,
            )

        # Once the threshold is reached the next failure opens a new lockout
        return LockoutDecision(
            allowed=True,
            remaining_attempts=max(0, config.max_attempts_per_account - recent_failures),
        )

    async def record(
        self,
        account_identifier: str,
        tenant_id: str | None,
        address: str | None,
        success: bool,
        deadline: float | None = None,
    ) -> None:
        """
        Record the outcome of a sign-in and prune attempts past retention.

        Insert failures propagate (losing audit rows would weaken the limits);
        purge failures are logged and swallowed.
        """
        self._require_account(account_identifier)
        now = self.clock.now()
        record = AttemptRecord(
            account_identifier=account_identifier,
            success=success,
            created_at=now,
            anonymized_address=anonymize_address(address),
            tenant_id=tenant_id,
        )
        await self._call_store(self.store.insert(record), deadline, "insert")

        cutoff = now - self.config.retention
        try:
            await self._call_store(self.store.purge_older_than(cutoff), deadline, "purge_older_than")
        except StoreError as e:
            logger.warning(f"Failed to purge login attempts older than {cutoff.isoformat()}: {e}")
