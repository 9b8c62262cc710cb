"""Sign-in rate limiting and lockout for club (tenant) accounts."""

from clubguard.core.clock import Clock, ManualClock, SystemClock
from clubguard.core.config import RateLimitConfig, Settings, load_settings
from clubguard.core.network import anonymize_address
from clubguard.exceptions import (
    ConfigurationError,
    InvalidAccountError,
    StoreError,
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
from clubguard.stores.base import AttemptRecord, AttemptStore
from clubguard.stores.memory import InMemoryAttemptStore

__all__ = [
    "AttemptRecord",
    "AttemptStore",
    "Clock",
    "ConfigurationError",
    "InMemoryAttemptStore",
    "InvalidAccountError",
    "LockoutDecision",
    "LockoutReason",
    "LoginRateLimiter",
    "ManualClock",
    "RateLimitConfig",
    "Settings",
    "StoreError",
    "StoreTimeoutError",
    "StoreUnavailableError",
    "SystemClock",
    "anonymize_address",
    "deadline_in",
    "load_settings",
    "normalize_account_identifier",
]
