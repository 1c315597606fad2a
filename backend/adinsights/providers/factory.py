"""OAuth client factory.

Provider-name lookup table plus a per-provider singleton cache.
"""

from adinsights.core.config import settings
from adinsights.providers.oauth.base import OAuthClient
from adinsights.providers.oauth.facebook import FacebookOAuthClient
from adinsights.providers.oauth.instagram import InstagramOAuthClient
from adinsights.providers.oauth.twitter import TwitterOAuthClient

_oauth_clients: dict[str, OAuthClient] = {}


def _build_facebook() -> OAuthClient:
    return FacebookOAuthClient(
        client_id=settings.facebook_app_id,
        client_secret=settings.facebook_app_secret.get_secret_value(),
        config_id=settings.facebook_business_config_id,
        timeout=settings.oauth_http_timeout,
    )


def _build_instagram() -> OAuthClient:
    return InstagramOAuthClient(
        client_id=settings.instagram_app_id,
        client_secret=settings.instagram_app_secret.get_secret_value(),
        timeout=settings.oauth_http_timeout,
    )


def _build_twitter() -> OAuthClient:
    return TwitterOAuthClient(
        client_id=settings.twitter_client_id,
        client_secret=settings.twitter_client_secret.get_secret_value(),
        timeout=settings.oauth_http_timeout,
    )


_BUILDERS = {
    "facebook": _build_facebook,
    "instagram": _build_instagram,
    "twitter": _build_twitter,
}


def supported_providers() -> tuple[str, ...]:
    """Provider names with a registered OAuth client."""
    return tuple(_BUILDERS)


def get_oauth_client(provider: str) -> OAuthClient:
    """Get or create the OAuth client for a provider.

    Clients read credentials from settings on first use. Call
    reset_oauth_clients() after changing provider settings.

    Args:
        provider: Provider name.

    Returns:
        OAuthClient instance.

    Raises:
        ValueError: If the provider is unknown.
    """
    client = _oauth_clients.get(provider)
    if client is None:
        builder = _BUILDERS.get(provider)
        if builder is None:
            raise ValueError(f"Unsupported OAuth provider: {provider}")
        client = builder()
        _oauth_clients[provider] = client
    return client


def reset_oauth_clients() -> None:
    """Reset client singletons.

    Used in tests to ensure isolation between test cases.
    """
    _oauth_clients.clear()
