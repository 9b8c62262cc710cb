# backend/clubguard/api/deps.py
"""
FastAPI glue for login handlers.

The handler stays responsible for verifying credentials and issuing tokens;
this module turns rate limiter decisions and store failures into HTTP
responses (429 with Retry-After, 503 for an unavailable store).
"""

import logging

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse

from clubguard.core.config import get_settings
from clubguard.core.network import UNKNOWN_ADDRESS, anonymize_address, first_forwarded_address
from clubguard.core.security_logger import security_log
from clubguard.exceptions import STORE_UNAVAILABLE, StoreError
from clubguard.services.rate_limiter import LockoutDecision, LoginRateLimiter, deadline_in

logger = logging.getLogger(__name__)


class LoginRateLimited(HTTPException):
    """429 raised for a denied sign-in."""

    def __init__(self, decision: LockoutDecision, retry_after: int | None):
        headers = {"Retry-After": str(retry_after)} if retry_after is not None else None
        super().__init__(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many login attempts",
            headers=headers,
        )
        self.decision = decision
        self.code = decision.error_code


def client_address_from_request(request: Request) -> str:
    """First X-Forwarded-For entry, else the peer address, else "unknown"."""
    forwarded = first_forwarded_address(request.headers.get("x-forwarded-for"))
    if forwarded:
        return forwarded
    if request.client and request.client.host:
        return request.client.host
    return UNKNOWN_ADDRESS


def get_rate_limiter(request: Request) -> LoginRateLimiter:
    limiter = getattr(request.app.state, "rate_limiter", None)
    if limiter is None:
        raise RuntimeError("Login rate limiter is not installed on this application.")
    return limiter


def store_deadline() -> float:
    return deadline_in(get_settings().STORE_TIMEOUT_SECONDS)


async def enforce_login_rate_limit(
    limiter: LoginRateLimiter,
    account_identifier: str,
    address: str | None,
    deadline: float | None = None,
) -> LockoutDecision:
    """
    Run the rate limit check for a login request and raise on denial.

    Store calls share one deadline, `STORE_TIMEOUT_SECONDS` from now unless
    the caller passes its own.

    Returns:
        The allowing decision, so the handler can expose remaining attempts.

    Raises:
        LoginRateLimited: the sign-in is denied (429).
        StoreError: the attempt store failed (503 via the installed handler).
    """
    if deadline is None:
        deadline = store_deadline()
    decision = await limiter.check(account_identifier, address, deadline)
    if decision.allowed:
        return decision

    security_log.rate_limited(anonymize_address(address), account_identifier, decision.reason)
    retry_after = decision.retry_after(limiter.clock.now(), fallback=limiter.config.window)
    raise LoginRateLimited(decision, retry_after)


async def _login_rate_limited_handler(request: Request, exc: LoginRateLimited) -> JSONResponse:
    content = {"detail": exc.detail, "code": exc.code}
    if exc.decision.locked_until is not None:
        content["lockoutUntil"] = exc.decision.locked_until.isoformat()
    return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)


async def _store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
    operation = getattr(exc, "operation", "unknown")
    logger.error(
        f"Attempt store unavailable during {request.method} {request.url.path}: {exc}",
        exc_info=exc,
    )
    security_log.store_unavailable(
        anonymize_address(client_address_from_request(request)), operation
    )
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Sign-in is temporarily unavailable.", "code": STORE_UNAVAILABLE},
    )


def install_rate_limiter(app: FastAPI, limiter: LoginRateLimiter) -> None:
    """Attach the limiter to `app.state` and register its exception handlers."""
    app.state.rate_limiter = limiter
    app.add_exception_handler(LoginRateLimited, _login_rate_limited_handler)
    app.add_exception_handler(StoreError, _store_error_handler)
