"""Per-provider OAuth client adapters."""

from adinsights.providers.oauth.facebook import FacebookOAuthClient
from adinsights.providers.oauth.instagram import InstagramOAuthClient
from adinsights.providers.oauth.twitter import TwitterOAuthClient

__all__ = [
    "FacebookOAuthClient",
    "InstagramOAuthClient",
    "TwitterOAuthClient",
]
