# backend/clubguard/core/clock.py
"""
Time sources for the rate limiter.

Every "now" the engine uses comes from an injected clock so that tests and
simulations can drive time explicitly.
"""

import threading
from datetime import UTC, datetime, timedelta
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    """
    Wall-clock source returning timezone-aware UTC instants.

    Readings never go backwards within one process, even if the host clock is
    stepped back (NTP corrections), so attempt timestamps stay ordered.
    """

    def __init__(self):
        self._last: datetime | None = None
        self._lock = threading.Lock()

    def now(self) -> datetime:
        current = datetime.now(UTC)
        with self._lock:
            if self._last is not None and current < self._last:
                current = self._last
            self._last = current
        return current


class ManualClock:
    """Clock that only moves when told to. Used by tests and simulations."""

    def __init__(self, start: datetime | None = None):
        if start is None:
            start = datetime(2024, 1, 1, tzinfo=UTC)
        if start.tzinfo is None:
            raise ValueError("ManualClock requires a timezone-aware start instant")
        self._now = start

    def now(self) -> datetime:
        return self._now

    def advance(self, delta: timedelta | None = None, **kwargs: float) -> datetime:
        """Move forward by `delta` or by `timedelta(**kwargs)`; returns the new instant."""
        step = delta if delta is not None else timedelta(**kwargs)
        if step < timedelta(0):
            raise ValueError("ManualClock cannot move backwards")
        self._now += step
        return self._now

    def set(self, instant: datetime) -> None:
        if instant < self._now:
            raise ValueError("ManualClock cannot move backwards")
        self._now = instant
