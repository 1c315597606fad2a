"""Provider abstraction layer.

Exports:
    OAuth client contract and result types
    Factory functions for client instances
"""

from adinsights.providers.factory import (
    get_oauth_client,
    reset_oauth_clients,
    supported_providers,
)
from adinsights.providers.oauth.base import (
    BusinessData,
    OAuthClient,
    ProviderIdentity,
    TokenSet,
)

__all__ = [
    # Contract
    "OAuthClient",
    "TokenSet",
    "ProviderIdentity",
    "BusinessData",
    # Factory
    "get_oauth_client",
    "reset_oauth_clients",
    "supported_providers",
]
