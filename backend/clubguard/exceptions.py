# backend/clubguard/exceptions.py

RATE_LIMITED_ACCOUNT = "rate-limited-account"
RATE_LIMITED_ADDRESS = "rate-limited-address"
RATE_LIMITED_PROGRESSIVE = "rate-limited-progressive"
STORE_UNAVAILABLE = "store-unavailable"


class ClubGuardError(Exception):
    """Base exception for the sign-in rate limiter."""

    pass


class ConfigurationError(ClubGuardError):
    """Raised at startup when a configuration value is missing or out of range."""

    def __init__(self, key: str, message: str):
        self.key = key
        self.message = message
        super().__init__(f"Invalid configuration for {key}: {message}")


class InvalidAccountError(ClubGuardError, ValueError):
    """Raised when the caller passes an empty account identifier."""

    pass


class StoreError(ClubGuardError):
    """Base exception for attempt store failures."""

    code = STORE_UNAVAILABLE


class StoreUnavailableError(StoreError):
    """Raised when the attempt store cannot complete an operation."""

    def __init__(self, operation: str, message: str | None = None):
        self.operation = operation
        super().__init__(message or f"Attempt store failed during '{operation}'.")


class StoreTimeoutError(StoreUnavailableError):
    """Raised when a store operation does not finish before the caller's deadline."""

    def __init__(self, operation: str):
        super().__init__(operation, f"Attempt store timed out during '{operation}'.")
