"""OAuth utilities: state, PKCE, and provider endpoint configuration.

State tokens and PKCE pairs are pure computations over the OS CSPRNG.
If the random source is unavailable the ``secrets`` module raises and the
request fails; there is no per-request recovery.
"""

import base64
import hashlib
import secrets
from dataclasses import dataclass
from typing import Literal

# State token entropy in bytes (256 bits)
_STATE_BYTES = 32

# PKCE code verifier length (RFC 7636 allows 43-128)
_VERIFIER_LENGTH = 128

# Characters allowed in PKCE code verifier (RFC 7636 §4.1)
# unreserved = ALPHA / DIGIT / "-" / "." / "_" / "~"
_UNRESERVED_CHARS = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-._~"


def generate_state() -> str:
    """Generate an unguessable OAuth state parameter.

    Returns:
        URL-safe random string carrying 256 bits of entropy.
    """
    return secrets.token_urlsafe(_STATE_BYTES)


def generate_code_verifier() -> str:
    """Generate a PKCE code verifier.

    RFC 7636 §4.1: 128-character string from unreserved characters.

    Returns:
        Random 128-character code verifier string.
    """
    return "".join(secrets.choice(_UNRESERVED_CHARS) for _ in range(_VERIFIER_LENGTH))


def generate_code_challenge(verifier: str) -> str:
    """Generate a PKCE code challenge from a verifier.

    RFC 7636 §4.2: BASE64URL(SHA256(code_verifier)), no padding.

    Args:
        verifier: PKCE code verifier string.

    Returns:
        Base64url-encoded SHA256 hash without padding.
    """
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


# ===================================================================
# OAuth Provider Configuration
# ===================================================================


@dataclass(frozen=True)
class OAuthProviderConfig:
    """Endpoint configuration for an OAuth provider.

    Attributes:
        authorization_url: Provider's authorization endpoint.
        token_url: Provider's token exchange endpoint.
        identity_url: Endpoint returning the authenticated account.
        revoke_url: Token revocation endpoint. May contain ``{provider_id}``.
        scopes: OAuth scopes to request.
        scope_separator: How the provider expects scopes to be joined.
        uses_pkce: Whether authorization carries a PKCE challenge.
        client_auth: "basic" for HTTP Basic client credentials, "form"
            for credentials embedded in the token request body.
    """

    authorization_url: str
    token_url: str
    identity_url: str
    revoke_url: str
    scopes: tuple[str, ...]
    scope_separator: str = ","
    uses_pkce: bool = False
    client_auth: Literal["basic", "form"] = "form"

    @property
    def scope(self) -> str:
        """Scopes joined the way the provider expects."""
        return self.scope_separator.join(self.scopes)


_GRAPH_REVOKE_URL = "https://graph.facebook.com/{provider_id}/permissions"

# nosec B106: token_url values are endpoints, not passwords
_PROVIDERS: dict[str, OAuthProviderConfig] = {
    "facebook": OAuthProviderConfig(  # nosec B106
        authorization_url="https://www.facebook.com/v18.0/dialog/oauth",
        token_url="https://graph.facebook.com/v18.0/oauth/access_token",
        identity_url="https://graph.facebook.com/me",
        revoke_url=_GRAPH_REVOKE_URL,
        scopes=(
            "ads_management",
            "ads_read",
            "business_management",
            "pages_read_engagement",
            "pages_manage_ads",
            "pages_manage_metadata",
            "read_insights",
        ),
    ),
    "instagram": OAuthProviderConfig(  # nosec B106
        authorization_url="https://www.instagram.com/oauth/authorize",
        token_url="https://api.instagram.com/oauth/access_token",
        identity_url="https://graph.instagram.com/v23.0/me",
        revoke_url=_GRAPH_REVOKE_URL,
        scopes=(
            "instagram_business_basic",
            "instagram_business_manage_messages",
            "instagram_business_manage_comments",
            "instagram_business_content_publish",
            "instagram_business_manage_insights",
        ),
    ),
    "twitter": OAuthProviderConfig(  # nosec B106
        authorization_url="https://twitter.com/i/oauth2/authorize",
        token_url="https://api.twitter.com/2/oauth2/token",
        identity_url="https://api.twitter.com/2/users/me",
        revoke_url="https://api.twitter.com/2/oauth2/revoke",
        scopes=(
            "tweet.read",
            "users.read",
            "like.read",
            "follows.read",
            "offline.access",
        ),
        scope_separator=" ",
        uses_pkce=True,
        client_auth="basic",
    ),
}


def get_provider_config(provider: str) -> OAuthProviderConfig:
    """Get OAuth configuration for a provider.

    Args:
        provider: Provider name ("facebook", "instagram", "twitter").

    Returns:
        OAuthProviderConfig for the provider.

    Raises:
        ValueError: If provider is not supported.
    """
    config = _PROVIDERS.get(provider)
    if config is None:
        msg = f"Unsupported OAuth provider: {provider}"
        raise ValueError(msg)
    return config
