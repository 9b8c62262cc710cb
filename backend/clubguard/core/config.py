# backend/clubguard/core/config.py

import logging
from dataclasses import dataclass
from datetime import timedelta
from functools import lru_cache
from typing import Literal

from pydantic import (
    AliasChoices,
    Field,
    PostgresDsn,
    ValidationError,
    computed_field,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from clubguard.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# Field name -> environment key, used to report which variable was rejected.
ENV_KEYS = {
    "MAX_ATTEMPTS_PER_ACCOUNT": "LOGIN_MAX_ATTEMPTS_PER_ACCOUNT",
    "MAX_ATTEMPTS_PER_ADDRESS": "LOGIN_MAX_ATTEMPTS_PER_ADDRESS",
    "WINDOW_MINUTES": "LOGIN_ATTEMPT_WINDOW_MINUTES",
    "INITIAL_LOCKOUT_MINUTES": "LOGIN_LOCKOUT_MINUTES",
    "MAX_LOCKOUT_HOURS": "LOGIN_MAX_LOCKOUT_HOURS",
    "LOCKOUT_GROWTH_FACTOR": "LOGIN_LOCKOUT_GROWTH_FACTOR",
    "RETENTION_HOURS": "LOGIN_ATTEMPT_RETENTION_HOURS",
}


@dataclass(frozen=True)
class RateLimitConfig:
    """
    Immutable rate limit policy handed to the engine at construction.

    Built once at startup (see `Settings.rate_limit_config`) or directly in tests.
    Every rule is checked on construction so an invalid policy never reaches
    the engine.
    """

    max_attempts_per_account: int = 5
    max_attempts_per_address: int = 20
    window: timedelta = timedelta(minutes=15)
    initial_lockout: timedelta = timedelta(minutes=15)
    max_lockout: timedelta = timedelta(hours=24)
    lockout_growth_factor: float = 2.0
    retention: timedelta = timedelta(days=7)

    def __post_init__(self) -> None:
        if self.max_attempts_per_account < 1:
            raise ConfigurationError(
                ENV_KEYS["MAX_ATTEMPTS_PER_ACCOUNT"], "threshold must be at least 1"
            )
        if self.max_attempts_per_address < 1:
            raise ConfigurationError(
                ENV_KEYS["MAX_ATTEMPTS_PER_ADDRESS"], "threshold must be at least 1"
            )
        for key, value in (
            ("WINDOW_MINUTES", self.window),
            ("INITIAL_LOCKOUT_MINUTES", self.initial_lockout),
            ("MAX_LOCKOUT_HOURS", self.max_lockout),
            ("RETENTION_HOURS", self.retention),
        ):
            if value <= timedelta(0):
                raise ConfigurationError(ENV_KEYS[key], "duration must be positive")
        if self.initial_lockout > self.max_lockout:
            raise ConfigurationError(
                ENV_KEYS["INITIAL_LOCKOUT_MINUTES"],
                "initial lockout must not be longer than the maximum lockout",
            )
        if not self.lockout_growth_factor > 1.0:
            raise ConfigurationError(
                ENV_KEYS["LOCKOUT_GROWTH_FACTOR"], "growth factor must be greater than 1.0"
            )
        if self.retention < self.window:
            raise ConfigurationError(
                ENV_KEYS["RETENTION_HOURS"], "retention must not be shorter than the window"
            )

    @property
    def account_fetch_limit(self) -> int:
        """How many recent attempts the account gate reads."""
        return 2 * self.max_attempts_per_account


def _duration(field: str, **kwargs: float) -> timedelta:
    try:
        return timedelta(**kwargs)
    except OverflowError as e:
        raise ConfigurationError(ENV_KEYS[field], "duration is out of range") from e


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore", case_sensitive=False
    )

    # --- Logging ---
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", validation_alias="LOG_LEVEL"
    )
    SECURITY_LOG_PATH: str | None = Field(
        default=None,
        description="Optional file for fail2ban-style security events.",
        validation_alias="SECURITY_LOG_PATH",
    )

    # --- Sign-in Rate Limit Settings ---
    MAX_ATTEMPTS_PER_ACCOUNT: int = Field(
        default=5,
        description="Failed attempts per account within the window before lockout",
        validation_alias=ENV_KEYS["MAX_ATTEMPTS_PER_ACCOUNT"],
    )
    MAX_ATTEMPTS_PER_ADDRESS: int = Field(
        default=20,
        description="Failed attempts per anonymized address within the window",
        validation_alias=ENV_KEYS["MAX_ATTEMPTS_PER_ADDRESS"],
    )
    WINDOW_MINUTES: int = Field(
        default=15,
        description="Rolling window (minutes) used to count failures",
        validation_alias=ENV_KEYS["WINDOW_MINUTES"],
    )
    INITIAL_LOCKOUT_MINUTES: int = Field(
        default=15,
        description="Length of the first lockout (minutes)",
        validation_alias=ENV_KEYS["INITIAL_LOCKOUT_MINUTES"],
    )
    MAX_LOCKOUT_HOURS: int = Field(
        default=24,
        description="Upper bound on any lockout (hours)",
        validation_alias=ENV_KEYS["MAX_LOCKOUT_HOURS"],
    )
    LOCKOUT_GROWTH_FACTOR: float = Field(
        default=2.0,
        description="Multiplier applied to each repeated lockout within a day",
        validation_alias=ENV_KEYS["LOCKOUT_GROWTH_FACTOR"],
    )
    RETENTION_HOURS: int = Field(
        default=7 * 24,
        description="Attempts older than this (hours) are deleted",
        validation_alias=ENV_KEYS["RETENTION_HOURS"],
    )
    STORE_TIMEOUT_SECONDS: float = Field(
        default=5.0,
        description="Per-request deadline for attempt store calls made by the API adapter",
        validation_alias="STORE_TIMEOUT_SECONDS",
    )

    # --- Database Settings ---
    PRIMARY_DATABASE_URL_ENV: str | None = Field(
        default=None, validation_alias=AliasChoices("DATABASE_URL", "PRIMARY_DATABASE_URL")
    )
    POSTGRES_SERVER: str = Field(default="db", validation_alias="POSTGRES_SERVER")
    POSTGRES_USER: str = Field(default="admin", validation_alias="POSTGRES_USER")
    POSTGRES_PASSWORD: str = Field(default="", validation_alias="POSTGRES_PASSWORD")
    POSTGRES_DB: str = Field(default="clubauth", validation_alias="POSTGRES_DB")
    POSTGRES_PORT: int = Field(default=5432, validation_alias="POSTGRES_PORT")
    DB_ECHO: bool = Field(default=False, validation_alias="DB_ECHO")

    def _build_database_url(self, use_async: bool) -> str:
        driver_prefix = "postgresql+asyncpg://" if use_async else "postgresql://"
        if self.PRIMARY_DATABASE_URL_ENV:
            db_url_str = self.PRIMARY_DATABASE_URL_ENV
            # Non-postgres URLs (e.g. sqlite+aiosqlite for local runs) are used verbatim
            if not db_url_str.startswith(("postgres://", "postgresql://", "postgresql+")):
                return db_url_str
            return driver_prefix + db_url_str.split("://", 1)[1]
        return str(
            PostgresDsn(
                f"{driver_prefix}{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
                f"@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
            )
        )

    @computed_field(repr=False)
    @property
    def ASYNC_SQLALCHEMY_DATABASE_URL(self) -> str:
        return self._build_database_url(use_async=True)

    @computed_field(repr=False)
    @property
    def SYNC_SQLALCHEMY_DATABASE_URL(self) -> str:
        return self._build_database_url(use_async=False)

    def rate_limit_config(self) -> RateLimitConfig:
        """Freeze the rate limit keys into the value the engine is built with."""
        return RateLimitConfig(
            max_attempts_per_account=self.MAX_ATTEMPTS_PER_ACCOUNT,
            max_attempts_per_address=self.MAX_ATTEMPTS_PER_ADDRESS,
            window=_duration("WINDOW_MINUTES", minutes=self.WINDOW_MINUTES),
            initial_lockout=_duration(
                "INITIAL_LOCKOUT_MINUTES", minutes=self.INITIAL_LOCKOUT_MINUTES
            ),
            max_lockout=_duration("MAX_LOCKOUT_HOURS", hours=self.MAX_LOCKOUT_HOURS),
            lockout_growth_factor=self.LOCKOUT_GROWTH_FACTOR,
            retention=_duration("RETENTION_HOURS", hours=self.RETENTION_HOURS),
        )


def load_settings(**overrides) -> Settings:
    """
    Load settings from the environment, turning validation failures into
    `ConfigurationError` so startup aborts with the offending key.

    The rate limit policy is validated here as well, not lazily on first use.
    """
    try:
        loaded = Settings(**overrides)
    except ValidationError as e:
        first = e.errors()[0]
        field = str(first["loc"][0]).upper() if first.get("loc") else "SETTINGS"
        key = ENV_KEYS.get(field, field)
        logger.critical(f"Invalid configuration for {key}: {first['msg']}")
        raise ConfigurationError(key, first["msg"]) from e

    try:
        loaded.rate_limit_config()
    except ConfigurationError as e:
        logger.critical(str(e))
        raise
    return loaded


@lru_cache
def get_settings() -> Settings:
    return load_settings()
