from clubguard.api.deps import (
    LoginRateLimited,
    client_address_from_request,
    enforce_login_rate_limit,
    get_rate_limiter,
    install_rate_limiter,
    store_deadline,
)

__all__ = [
    "LoginRateLimited",
    "client_address_from_request",
    "enforce_login_rate_limit",
    "get_rate_limiter",
    "install_rate_limiter",
    "store_deadline",
]
