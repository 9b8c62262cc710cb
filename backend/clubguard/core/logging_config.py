# backend/clubguard/core/logging_config.py
import logging
import sys

from clubguard.core.security_logger import security_log


def _clear_existing_handlers(logger: logging.Logger) -> None:
    """Removes all existing handlers from the logger."""
    for handler in logger.handlers[:]:
        try:
            handler.flush()
            handler.close()
        except Exception as e:
            # Logging might not be working yet
            print(f"Warning: Error closing existing log handler: {e}", file=sys.stderr)
        logger.removeHandler(handler)


def setup_logging(level: str = "INFO", security_log_path: str | None = None) -> None:
    """
    Configure the root logger with a console handler and, optionally, the
    security event file.

    Args:
        level: Root log level name (DEBUG, INFO, ...).
        security_log_path: File for RATE_LIMITED/STORE_UNAVAILABLE events.
    """
    root_logger = logging.getLogger()
    _clear_existing_handlers(root_logger)

    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO
    root_logger.setLevel(numeric_level)

    handler = logging.StreamHandler(sys.stdout)
    if numeric_level <= logging.DEBUG:
        fmt = "%(asctime)s %(levelname)s: [%(name)s:%(lineno)d] %(message)s"
    else:
        fmt = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    handler.setFormatter(logging.Formatter(fmt, datefmt="%Y-%m-%d %H:%M:%S"))
    root_logger.addHandler(handler)

    security_log.configure(security_log_path)
