"""Rate limiting configuration using slowapi.

Security: Limits request frequency on the auth endpoints per client.

Counters live in the configured storage (in-memory by default). In-memory
counters are per process: a restart or a second instance starts from
zero. Entries expire with their window, so no cleanup timer is needed.

Usage in routers:
    from adinsights.core.rate_limiting import limiter

    @router.post("/{provider}/login")
    @limiter.limit(lambda: settings.rate_limit_auth)
    async def login(request: Request, ...):
        ...
"""

from fastapi import Request, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.responses import JSONResponse

from adinsights.core.config import settings
from adinsights.core.errors import RateLimitError
from adinsights.core.responses import ErrorDetail, ErrorResponse


def client_identifier(request: Request) -> str:
    """Get rate limit key from request.

    Uses the first X-Forwarded-For hop when present (the app runs behind
    a reverse proxy), else the socket peer address.

    Args:
        request: The incoming request.

    Returns:
        Rate limit key string.
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop
    return get_remote_address(request)


def create_limiter(
    *,
    enabled: bool | None = None,
    storage_uri: str | None = None,
) -> Limiter:
    """Build a Limiter instance.

    Tests build isolated instances; the app uses the module-level one.

    Args:
        enabled: Override settings.rate_limit_enabled.
        storage_uri: Override settings.rate_limit_storage_uri.

    Returns:
        Configured slowapi Limiter.
    """
    return Limiter(
        key_func=client_identifier,
        enabled=settings.rate_limit_enabled if enabled is None else enabled,
        storage_uri=storage_uri or settings.rate_limit_storage_uri,
    )


# Global limiter instance, created at import (process start)
limiter = create_limiter()


def rate_limit_exceeded_handler(
    _request: Request,
    exc: RateLimitExceeded,
) -> Response:
    """Handle rate limit exceeded errors.

    Security: Returns 429 Too Many Requests with standard error envelope.

    Args:
        request: The incoming request.
        exc: The rate limit exception.

    Returns:
        JSONResponse with 429 status and retry-after header.
    """
    # Parse retry-after from exception detail (e.g., "10 per 1 minute")
    # Fallback to 60 seconds if parsing fails
    try:
        retry_after = str(exc.detail.split()[-1])
        int(retry_after.rstrip("s"))
    except (ValueError, AttributeError, IndexError):
        retry_after = "60"

    error = RateLimitError(f"Rate limit exceeded: {exc.detail}")
    return JSONResponse(
        status_code=error.status_code,
        content=ErrorResponse(
            error=ErrorDetail(code=error.code, message=error.message)
        ).model_dump(),
        headers={"Retry-After": retry_after},
    )
