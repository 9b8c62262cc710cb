# backend/clubguard/core/security_logger.py
"""
Dedicated security logger for sign-in rate limiting events.

Writes one line per event in a format fail2ban can parse. Only anonymized
addresses and masked account identifiers ever reach the log.
"""

import logging
import re
from logging.handlers import RotatingFileHandler
from pathlib import Path


def sanitize(value: str | None, max_length: int = 255) -> str:
    """
    Sanitize user input to prevent log injection attacks.

    Args:
        value: The value to sanitize
        max_length: Maximum length of the output

    Returns:
        Sanitized string safe for logging
    """
    if not value:
        return "unknown"

    value = str(value).strip()

    # Newlines, brackets and control characters could forge or break entries
    value = re.sub(r"[\n\r\[\]<>\x00-\x1f\x7f-\x9f]", "", value)

    return value[:max_length]


def mask_account(account: str | None) -> str:
    """
    Mask an account identifier for privacy while keeping it recognisable.

    Emails keep the first three characters of the local part and the domain;
    plain usernames keep their first three characters.
    """
    if not account:
        return "unknown"

    if "@" not in account:
        return sanitize(account[:3] + "***" if len(account) > 3 else account[:1] + "***")

    local, domain = account.rsplit("@", 1)
    if len(local) > 3:
        masked_local = local[:3] + "***"
    else:
        masked_local = local[0] + "***" if local else "***"

    return f"{sanitize(masked_local)}@{sanitize(domain)}"


class SecurityLogger:
    """
    Security event logger.

    Log format compatible with fail2ban datepattern:
        2026-01-05 10:15:30 SECURITY [EVENT_TYPE] address=x.x.x.0 field=value ...

    Events propagate to the `clubguard.security` logger; `configure` adds a
    rotating file handler when a path is configured.
    """

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance.logger = logging.getLogger("clubguard.security")
            cls._instance._file_handler = None
        return cls._instance

    def configure(self, log_path: str | Path | None) -> None:
        """Attach (or replace) the rotating file handler."""
        if self._file_handler is not None:
            self.logger.removeHandler(self._file_handler)
            self._file_handler.close()
            self._file_handler = None

        if not log_path:
            return

        path = Path(log_path)
        path.parent.mkdir(parents=True, exist_ok=True)

        # 50MB max, keep 10 backups
        handler = RotatingFileHandler(str(path), maxBytes=50 * 1024 * 1024, backupCount=10)
        handler.setFormatter(
            logging.Formatter("%(asctime)s SECURITY [%(message)s", datefmt="%Y-%m-%d %H:%M:%S")
        )
        self.logger.setLevel(logging.INFO)
        self.logger.addHandler(handler)
        self._file_handler = handler

    def rate_limited(self, address: str | None, account: str, reason: str) -> None:
        """
        Log a denied sign-in.

        Args:
            address: Anonymized client address (None when unknown)
            account: Account identifier that was attempted
            reason: Denial reason (account, address, progressive)
        """
        self.logger.info(
            f"RATE_LIMITED] address={sanitize(address)} account={mask_account(account)} "
            f"reason={sanitize(reason)}"
        )

    def store_unavailable(self, address: str | None, operation: str) -> None:
        """Log a sign-in that could not be evaluated because the attempt store failed."""
        self.logger.warning(
            f"STORE_UNAVAILABLE] address={sanitize(address)} "
            f"operation={sanitize(operation, max_length=50)}"
        )


security_log = SecurityLogger()
