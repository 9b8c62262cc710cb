# backend/tests/unit/services/test_rate_limiter.py
"""Behavioural tests for the sign-in rate limiter, driven by a manual clock."""

import asyncio
import logging
from datetime import timedelta

import pytest

from clubguard.core.clock import ManualClock
from clubguard.core.config import RateLimitConfig
from clubguard.core.network import anonymize_address
from clubguard.exceptions import (
    RATE_LIMITED_ACCOUNT,
    RATE_LIMITED_ADDRESS,
    RATE_LIMITED_PROGRESSIVE,
    InvalidAccountError,
    StoreTimeoutError,
    StoreUnavailableError,
)
from clubguard.services.rate_limiter import (
    LockoutDecision,
    LockoutReason,
    LoginRateLimiter,
    deadline_in,
    normalize_account_identifier,
)
from clubguard.stores.memory import InMemoryAttemptStore

ADDR = "203.0.113.7"


class SpyStore(InMemoryAttemptStore):
    """In-memory store that records which operations were called."""

    def __init__(self):
        super().__init__()
        self.calls: list[str] = []

    async def list_by_account(self, account_identifier, since, limit):
        self.calls.append("list_by_account")
        return await super().list_by_account(account_identifier, since, limit)

    async def count_failures_by_address(self, anonymized_address, since):
        self.calls.append("count_failures_by_address")
        return await super().count_failures_by_address(anonymized_address, since)


class FailingStore(InMemoryAttemptStore):
    def __init__(self, fail_on: set[str]):
        super().__init__()
        self.fail_on = fail_on

    async def insert(self, record):
        if "insert" in self.fail_on:
            raise StoreUnavailableError("insert")
        await super().insert(record)

    async def list_by_account(self, account_identifier, since, limit):
        if "list_by_account" in self.fail_on:
            raise StoreUnavailableError("list_by_account")
        return await super().list_by_account(account_identifier, since, limit)

    async def purge_older_than(self, cutoff):
        if "purge_older_than" in self.fail_on:
            raise StoreUnavailableError("purge_older_than")
        return await super().purge_older_than(cutoff)


class SlowStore(InMemoryAttemptStore):
    def __init__(self, slow_on: set[str], delay: float = 1.0):
        super().__init__()
        self.slow_on = slow_on
        self.delay = delay

    async def insert(self, record):
        if "insert" in self.slow_on:
            await asyncio.sleep(self.delay)
        await super().insert(record)

    async def list_by_account(self, account_identifier, since, limit):
        if "list_by_account" in self.slow_on:
            await asyncio.sleep(self.delay)
        return await super().list_by_account(account_identifier, since, limit)

    async def purge_older_than(self, cutoff):
        if "purge_older_than" in self.slow_on:
            await asyncio.sleep(self.delay)
        return await super().purge_older_than(cutoff)


class CountingClock(ManualClock):
    def __init__(self):
        super().__init__()
        self.reads = 0

    def now(self):
        self.reads += 1
        return super().now()


async def fail_times(
    limiter: LoginRateLimiter,
    clock: ManualClock,
    account: str,
    times: int,
    address: str | None = ADDR,
    spacing: timedelta = timedelta(seconds=1),
) -> None:
    for i in range(times):
        if i:
            clock.advance(spacing)
        await limiter.record(account, None, address, False)


# ==================== Scenarios ====================


@pytest.mark.asyncio
async def test_first_lockout(limiter: LoginRateLimiter, clock: ManualClock) -> None:
    """
    Scenario A. One second after expiry the failure at t0 has left the window,
    so four failures remain and one attempt is left rather than none.
    """
    t0 = clock.now()
    await fail_times(limiter, clock, "alice", 5)

    clock.set(t0 + timedelta(seconds=5))
    decision = await limiter.check("alice", ADDR)
    assert decision == LockoutDecision(
        allowed=False,
        remaining_attempts=0,
        locked_until=t0 + timedelta(minutes=15),
        reason=LockoutReason.ACCOUNT,
    )
    assert decision.error_code == RATE_LIMITED_ACCOUNT

    clock.set(t0 + timedelta(minutes=15, seconds=1))
    decision = await limiter.check("alice", ADDR)
    assert decision.allowed is True
    assert decision.remaining_attempts == 1
    assert decision.locked_until is None
    assert decision.reason is None


@pytest.mark.asyncio
async def test_progressive_lockout(limiter: LoginRateLimiter, clock: ManualClock) -> None:
    """Scenario B."""
    t0 = clock.now()
    await fail_times(limiter, clock, "alice", 5)

    second_burst = t0 + timedelta(minutes=15, seconds=1)
    clock.set(second_burst)
    await fail_times(limiter, clock, "alice", 5)

    clock.set(t0 + timedelta(minutes=15, seconds=10))
    decision = await limiter.check("alice", ADDR)
    assert decision.allowed is False
    assert decision.remaining_attempts == 0
    assert decision.locked_until == second_burst + timedelta(minutes=30)
    assert decision.reason == LockoutReason.PROGRESSIVE
    assert decision.error_code == RATE_LIMITED_PROGRESSIVE


@pytest.mark.asyncio
async def test_third_episode_doubles_again(limiter: LoginRateLimiter, clock: ManualClock) -> None:
    t0 = clock.now()
    for burst in range(3):
        clock.set(t0 + timedelta(hours=burst))
        await fail_times(limiter, clock, "alice", 5)

    third_burst = t0 + timedelta(hours=2)
    clock.set(third_burst + timedelta(seconds=10))
    decision = await limiter.check("alice", ADDR)
    assert decision.reason == LockoutReason.PROGRESSIVE
    assert decision.locked_until == third_burst + timedelta(minutes=60)


@pytest.mark.asyncio
async def test_episodes_older_than_a_day_are_forgotten(
    limiter: LoginRateLimiter, clock: ManualClock
) -> None:
    t0 = clock.now()
    await fail_times(limiter, clock, "alice", 5)

    later = t0 + timedelta(hours=25)
    clock.set(later)
    await fail_times(limiter, clock, "alice", 5)

    decision = await limiter.check("alice", ADDR)
    assert decision.reason == LockoutReason.ACCOUNT
    assert decision.locked_until == later + timedelta(minutes=15)


@pytest.mark.asyncio
async def test_address_flood(clock: ManualClock) -> None:
    """Scenario D."""
    store = SpyStore()
    limiter = LoginRateLimiter(store, RateLimitConfig(), clock)
    for i in range(20):
        if i:
            clock.advance(seconds=1)
        await limiter.record(f"user{i}@example.com", None, "198.51.100.42", False)

    store.calls.clear()
    decision = await limiter.check("someone-else@example.com", "198.51.100.42")
    assert decision == LockoutDecision(
        allowed=False, remaining_attempts=0, reason=LockoutReason.ADDRESS
    )
    assert decision.error_code == RATE_LIMITED_ADDRESS
    assert store.calls == ["count_failures_by_address"]


@pytest.mark.asyncio
async def test_same_bucket_shares_address_gate(limiter: LoginRateLimiter, clock: ManualClock) -> None:
    for i in range(20):
        await limiter.record(f"user{i}", None, f"198.51.100.{i + 1}", False)

    decision = await limiter.check("victim", "198.51.100.250")
    assert decision.reason == LockoutReason.ADDRESS


@pytest.mark.asyncio
async def test_address_gate_ignores_failures_outside_window(
    limiter: LoginRateLimiter, clock: ManualClock
) -> None:
    for i in range(20):
        await limiter.record(f"user{i}", None, "198.51.100.42", False)

    clock.advance(minutes=15, seconds=1)
    decision = await limiter.check("victim", "198.51.100.42")
    assert decision.allowed is True


@pytest.mark.asyncio
async def test_success_does_not_clear_recent_failures(
    limiter: LoginRateLimiter, clock: ManualClock
) -> None:
    """
    Scenario E. Only failures count toward the threshold: four failures and a
    success leave one attempt rather than four, and the next failure locks.
    """
    await fail_times(limiter, clock, "bob", 4)
    clock.advance(seconds=1)
    await limiter.record("bob", "club-1", ADDR, True)

    decision = await limiter.check("bob", ADDR)
    assert decision.allowed is True
    assert decision.remaining_attempts == 1

    clock.advance(seconds=1)
    await limiter.record("bob", "club-1", ADDR, False)
    decision = await limiter.check("bob", ADDR)
    assert decision.allowed is False
    assert decision.reason == LockoutReason.ACCOUNT


@pytest.mark.asyncio
async def test_ipv6_counted_verbatim(limiter: LoginRateLimiter, clock: ManualClock) -> None:
    """Scenario F."""
    assert anonymize_address("2001:db8::1") == "2001:db8::1"
    for i in range(20):
        await limiter.record(f"user{i}", None, "2001:db8::1", False)

    blocked = await limiter.check("victim", "2001:db8::1")
    assert blocked.reason == LockoutReason.ADDRESS

    neighbour = await limiter.check("victim", "2001:db8::2")
    assert neighbour.allowed is True


# ==================== Properties ====================


@pytest.mark.asyncio
async def test_threshold_boundary(limiter: LoginRateLimiter, clock: ManualClock) -> None:
    t0 = clock.now()
    await fail_times(limiter, clock, "dave", 4)

    decision = await limiter.check("dave", ADDR)
    assert decision.allowed is True
    assert decision.remaining_attempts == 1

    clock.advance(seconds=1)
    await limiter.record("dave", None, ADDR, False)

    epsilon = timedelta(microseconds=1)
    clock.set(t0 + timedelta(minutes=15) - epsilon)
    assert (await limiter.check("dave", ADDR)).allowed is False

    clock.set(t0 + timedelta(minutes=15) + epsilon)
    assert (await limiter.check("dave", ADDR)).allowed is True


@pytest.mark.asyncio
async def test_fresh_account_has_full_allowance(limiter: LoginRateLimiter) -> None:
    decision = await limiter.check("nobody", ADDR)
    assert decision == LockoutDecision(allowed=True, remaining_attempts=5)
    assert decision.error_code is None


@pytest.mark.asyncio
async def test_address_gate_takes_precedence(limiter: LoginRateLimiter, clock: ManualClock) -> None:
    await fail_times(limiter, clock, "carol", 5)
    for i in range(15):
        await limiter.record(f"other{i}", None, ADDR, False)

    decision = await limiter.check("carol", ADDR)
    assert decision.reason == LockoutReason.ADDRESS
    assert decision.locked_until is None


@pytest.mark.asyncio
async def test_rejected_checks_do_not_extend_lockout(
    limiter: LoginRateLimiter, clock: ManualClock
) -> None:
    await fail_times(limiter, clock, "erin", 5)

    first = await limiter.check("erin", ADDR)
    clock.advance(minutes=5)
    second = await limiter.check("erin", ADDR)
    assert first.allowed is False and second.allowed is False
    assert first.locked_until == second.locked_until


@pytest.mark.asyncio
async def test_progressive_lockout_outlasts_window(
    limiter: LoginRateLimiter, clock: ManualClock
) -> None:
    t0 = clock.now()
    await fail_times(limiter, clock, "alice", 5)
    second_burst = t0 + timedelta(minutes=15, seconds=1)
    clock.set(second_burst)
    await fail_times(limiter, clock, "alice", 5)

    # Every failure has left the 15 minute window by now
    clock.set(second_burst + timedelta(minutes=20))
    decision = await limiter.check("alice", ADDR)
    assert decision.allowed is False
    assert decision.reason == LockoutReason.PROGRESSIVE
    assert decision.locked_until == second_burst + timedelta(minutes=30)

    clock.set(second_burst + timedelta(minutes=30, seconds=1))
    decision = await limiter.check("alice", ADDR)
    assert decision == LockoutDecision(allowed=True, remaining_attempts=5)


@pytest.mark.asyncio
async def test_first_failure_after_expiry_relocks(
    limiter: LoginRateLimiter, clock: ManualClock
) -> None:
    t0 = clock.now()
    await fail_times(limiter, clock, "alice", 5)

    relock_at = t0 + timedelta(minutes=15, milliseconds=500)
    clock.set(relock_at)
    assert (await limiter.check("alice", ADDR)).allowed is True
    await limiter.record("alice", None, ADDR, False)

    decision = await limiter.check("alice", ADDR)
    assert decision == LockoutDecision(
        allowed=False,
        remaining_attempts=0,
        locked_until=relock_at + timedelta(minutes=30),
        reason=LockoutReason.PROGRESSIVE,
    )

    clock.set(relock_at + timedelta(minutes=20))
    held = await limiter.check("alice", ADDR)
    assert held.allowed is False
    assert held.locked_until == decision.locked_until


@pytest.mark.asyncio
async def test_retry_loop_after_expiry_gets_one_failure(
    limiter: LoginRateLimiter, clock: ManualClock
) -> None:
    t0 = clock.now()
    await fail_times(limiter, clock, "alice", 5)
    clock.set(t0 + timedelta(minutes=15))

    failures = 0
    decision = await limiter.check("alice", ADDR)
    while decision.allowed and failures < 10:
        await limiter.record("alice", None, ADDR, False)
        failures += 1
        clock.advance(milliseconds=500)
        decision = await limiter.check("alice", ADDR)

    assert failures == 1
    assert decision.reason == LockoutReason.PROGRESSIVE
    assert decision.locked_until == t0 + timedelta(minutes=45)


@pytest.mark.asyncio
async def test_retention_purge(store: InMemoryAttemptStore, clock: ManualClock) -> None:
    config = RateLimitConfig(retention=timedelta(days=7))
    limiter = LoginRateLimiter(store, config, clock)
    t0 = clock.now()
    await limiter.record("frank", None, ADDR, False)
    await limiter.record("grace", None, ADDR, True)

    clock.set(t0 + timedelta(days=7, seconds=1))
    await limiter.record("frank", None, ADDR, False)

    cutoff = clock.now() - config.retention
    assert len(store) == 1
    assert all(record.created_at >= cutoff for record in store.records)
    assert await store.list_by_account_oldest_first("grace", t0 - timedelta(days=1)) == []


@pytest.mark.asyncio
async def test_raw_address_never_stored(limiter: LoginRateLimiter, store: InMemoryAttemptStore) -> None:
    raw_addresses = ["192.168.1.100", "2001:db8::1", "unknown", None, "", "10.1.2.3"]
    for raw in raw_addresses:
        await limiter.record("henry", None, raw, False)

    stored = [record.anonymized_address for record in store.records]
    assert stored == [anonymize_address(raw) for raw in raw_addresses]
    assert "192.168.1.100" not in stored
    assert stored[2] is None and stored[3] is None


@pytest.mark.asyncio
async def test_record_fields(limiter: LoginRateLimiter, store: InMemoryAttemptStore, clock: ManualClock) -> None:
    await limiter.record("ivy@example.com", "club-42", "192.0.2.15", True)

    (record,) = store.records
    assert record.account_identifier == "ivy@example.com"
    assert record.tenant_id == "club-42"
    assert record.anonymized_address == "192.0.2.0"
    assert record.success is True
    assert record.created_at == clock.now()


@pytest.mark.asyncio
async def test_unknown_address_skips_address_gate(clock: ManualClock) -> None:
    store = SpyStore()
    limiter = LoginRateLimiter(store, RateLimitConfig(), clock)

    decision = await limiter.check("jack", "unknown")
    assert decision.allowed is True
    assert "count_failures_by_address" not in store.calls


@pytest.mark.asyncio
async def test_single_clock_read_per_check(store: InMemoryAttemptStore) -> None:
    clock = CountingClock()
    limiter = LoginRateLimiter(store, RateLimitConfig(), clock)
    await fail_times(limiter, clock, "kate", 5)

    clock.reads = 0
    await limiter.check("kate", ADDR)
    assert clock.reads == 1


@pytest.mark.asyncio
async def test_concurrent_records_are_all_counted(
    limiter: LoginRateLimiter, store: InMemoryAttemptStore
) -> None:
    await asyncio.gather(*(limiter.record("liam", None, ADDR, False) for _ in range(5)))

    assert len(store) == 5
    decision = await limiter.check("liam", ADDR)
    assert decision.allowed is False


# ==================== Errors ====================


@pytest.mark.parametrize("account", ["", "   "])
@pytest.mark.asyncio
async def test_empty_account_rejected(limiter: LoginRateLimiter, account: str) -> None:
    with pytest.raises(InvalidAccountError):
        await limiter.check(account, ADDR)
    with pytest.raises(ValueError):
        await limiter.record(account, None, ADDR, False)


@pytest.mark.asyncio
async def test_store_error_on_check_propagates(clock: ManualClock) -> None:
    limiter = LoginRateLimiter(FailingStore({"list_by_account"}), RateLimitConfig(), clock)
    with pytest.raises(StoreUnavailableError) as exc_info:
        await limiter.check("mia", ADDR)
    assert exc_info.value.code == "store-unavailable"


@pytest.mark.asyncio
async def test_store_error_on_insert_is_fatal(clock: ManualClock) -> None:
    limiter = LoginRateLimiter(FailingStore({"insert"}), RateLimitConfig(), clock)
    with pytest.raises(StoreUnavailableError):
        await limiter.record("noah", None, ADDR, False)


@pytest.mark.asyncio
async def test_purge_failure_is_logged_not_raised(clock: ManualClock, caplog) -> None:
    store = FailingStore({"purge_older_than"})
    limiter = LoginRateLimiter(store, RateLimitConfig(), clock)

    with caplog.at_level(logging.WARNING, logger="clubguard.services.rate_limiter"):
        await limiter.record("olivia", None, ADDR, False)

    assert len(store) == 1
    assert any("Failed to purge" in message for message in caplog.messages)


@pytest.mark.asyncio
async def test_deadline_exceeded_on_check(clock: ManualClock) -> None:
    limiter = LoginRateLimiter(SlowStore({"list_by_account"}), RateLimitConfig(), clock)
    with pytest.raises(StoreTimeoutError):
        await limiter.check("paul", ADDR, deadline=deadline_in(0.01))


@pytest.mark.asyncio
async def test_deadline_exceeded_on_insert(clock: ManualClock) -> None:
    limiter = LoginRateLimiter(SlowStore({"insert"}), RateLimitConfig(), clock)
    with pytest.raises(StoreTimeoutError):
        await limiter.record("quinn", None, ADDR, False, deadline=deadline_in(0.01))


@pytest.mark.asyncio
async def test_purge_timeout_keeps_insert(clock: ManualClock) -> None:
    store = SlowStore({"purge_older_than"})
    limiter = LoginRateLimiter(store, RateLimitConfig(), clock)

    await limiter.record("rosa", None, ADDR, False, deadline=deadline_in(0.01))
    assert len(store) == 1


@pytest.mark.asyncio
async def test_no_deadline_waits_for_store(clock: ManualClock) -> None:
    limiter = LoginRateLimiter(SlowStore({"list_by_account"}, delay=0.01), RateLimitConfig(), clock)
    decision = await limiter.check("sam", ADDR)
    assert decision.allowed is True


# ==================== Decision helpers ====================


def test_retry_after_for_account_lockout(clock: ManualClock) -> None:
    now = clock.now()
    decision = LockoutDecision(
        allowed=False,
        remaining_attempts=0,
        locked_until=now + timedelta(seconds=90, milliseconds=200),
        reason=LockoutReason.ACCOUNT,
    )
    assert decision.retry_after(now) == 91


def test_retry_after_for_address_uses_fallback(clock: ManualClock) -> None:
    decision = LockoutDecision(allowed=False, remaining_attempts=0, reason=LockoutReason.ADDRESS)
    assert decision.retry_after(clock.now()) is None
    assert decision.retry_after(clock.now(), fallback=timedelta(minutes=15)) == 900


def test_retry_after_never_below_one_second(clock: ManualClock) -> None:
    now = clock.now()
    decision = LockoutDecision(
        allowed=False, remaining_attempts=0, locked_until=now, reason=LockoutReason.ACCOUNT
    )
    assert decision.retry_after(now) == 1


def test_normalize_account_identifier() -> None:
    assert normalize_account_identifier("  Alice@Example.COM ") == "alice@example.com"
