"""Base URL and redirect URI helpers.

The redirect_uri sent at authorization time and at token-exchange time
must be identical, and must match what was registered with the provider.
Both call sites build it through callback_url().
"""

import re
from urllib.parse import urlencode, urlsplit, urlunsplit

from fastapi import Request

from adinsights.core.config import settings

_DUPLICATE_SLASHES = re.compile(r"/{2,}")


def get_base_url(request: Request | None = None) -> str:
    """Return the externally reachable base URL without a trailing slash.

    APP_URL wins when configured. Otherwise the URL is derived from proxy
    headers, then from the request itself.

    Args:
        request: Incoming request, used when APP_URL is unset.

    Returns:
        Base URL such as "https://app.example.com".
    """
    if settings.app_url:
        return settings.app_base_url
    if request is None:
        msg = "APP_URL is not configured and no request is available"
        raise ValueError(msg)

    host = request.headers.get("x-forwarded-host")
    if host:
        proto = request.headers.get("x-forwarded-proto", "https")
        return f"{proto}://{host}"
    return str(request.base_url).rstrip("/")


def normalize_url(url: str) -> str:
    """Collapse repeated slashes in the path, leaving the scheme intact."""
    parts = urlsplit(url)
    return urlunsplit(parts._replace(path=_DUPLICATE_SLASHES.sub("/", parts.path)))


def create_url(
    path: str,
    params: dict[str, str] | None = None,
    *,
    request: Request | None = None,
) -> str:
    """Join the base URL with a path and optional query parameters."""
    url = normalize_url(f"{get_base_url(request)}/{path.lstrip('/')}")
    if params:
        url = f"{url}?{urlencode(params)}"
    return url


def callback_url(provider: str, request: Request | None = None) -> str:
    """Build the OAuth redirect_uri for a provider."""
    return create_url(f"/api/v1/auth/{provider}/callback", request=request)
