# backend/clubguard/services/lockout_policy.py
"""
Pure lockout arithmetic: episode counting, progressive lockout durations and
the replay of an account's lockouts from its attempt history.

Nothing here reads the clock or touches the store.
"""

from collections import deque
from collections.abc import Iterable
from datetime import datetime, timedelta
from typing import NamedTuple

from clubguard.core.config import RateLimitConfig
from clubguard.stores.base import AttemptRecord


def count_lockout_episodes(attempts: Iterable[AttemptRecord], threshold: int) -> int:
    """
    Count the runs of consecutive failures that reached `threshold`.

    Args:
        attempts: One account's attempts, oldest first.
        threshold: Failures needed for one lockout episode (>= 1).

    Returns:
        Number of completed episodes. A trailing run still below the
        threshold is not counted, and a success after an episode does not
        undo it.
    """
    if threshold < 1:
        raise ValueError("threshold must be at least 1")

    episodes = 0
    consecutive_failures = 0
    for attempt in attempts:
        if attempt.success:
            consecutive_failures = 0
            continue
        consecutive_failures += 1
        if consecutive_failures >= threshold:
            episodes += 1
            consecutive_failures = 0
    return episodes


def lockout_duration(episode: int, config: RateLimitConfig) -> timedelta:
    """
    Duration of the `episode`-th lockout (1-based) within the episode window.

    initial * growth_factor ** (episode - 1), never more than `max_lockout`.
    """
    if episode < 1:
        raise ValueError("episode ordinal is 1-based")

    try:
        multiplier = config.lockout_growth_factor ** (episode - 1)
        duration = config.initial_lockout * multiplier
    except OverflowError:
        return config.max_lockout

    if duration >= config.max_lockout:
        return config.max_lockout
    return duration


class LockoutEpisode(NamedTuple):
    """One lockout opened for an account."""

    ordinal: int
    anchor: datetime
    locked_until: datetime


def replay_lockouts(
    attempts: Iterable[AttemptRecord], config: RateLimitConfig
) -> list[LockoutEpisode]:
    """
    Replay the account gate over one account's attempts, oldest first.

    A failure outside an active lockout that brings the failures within the
    window up to the threshold opens the next lockout. The first lockout is
    anchored on the oldest failure in the window; later ones on the oldest
    failure since the previous lockout expired. Failures made while a lockout
    is active never extend it. Successes are ignored.

    Returns:
        Lockouts in the order they were opened. Both `anchor` and
        `locked_until` increase strictly from one to the next.
    """
    threshold = config.max_attempts_per_account
    episodes: list[LockoutEpisode] = []
    window_failures: deque[datetime] = deque()

    for attempt in attempts:
        if attempt.success:
            continue
        created_at = attempt.created_at
        window_failures.append(created_at)
        while window_failures[0] < created_at - config.window:
            window_failures.popleft()

        if episodes and created_at < episodes[-1].locked_until:
            continue
        if len(window_failures) < threshold:
            continue

        floor = episodes[-1].locked_until if episodes else None
        anchor = next(f for f in window_failures if floor is None or f >= floor)
        ordinal = len(episodes) + 1
        episodes.append(
            LockoutEpisode(ordinal, anchor, anchor + lockout_duration(ordinal, config))
        )
    return episodes
