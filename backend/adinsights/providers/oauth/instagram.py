"""Instagram Business Login OAuth client.

Credentials are form-embedded in the token request. Instagram does not
report a lifetime for the short-lived token it returns here, so the
stored expiry defaults to 60 days.
"""

from datetime import timedelta

from adinsights.providers.oauth.base import OAuthClient, ProviderIdentity, TokenSet

_DEFAULT_EXPIRES_IN = int(timedelta(days=60).total_seconds())


class InstagramOAuthClient(OAuthClient):
    """OAuth client for Instagram."""

    provider_name = "instagram"

    async def exchange_code(
        self,
        *,
        code: str,
        redirect_uri: str,
        code_verifier: str | None = None,  # noqa: ARG002 - no PKCE for Instagram
    ) -> TokenSet:
        payload = await self._request_json(
            "POST",
            self.config.token_url,
            operation="token_exchange",
            **self._with_client_credentials(
                {
                    "grant_type": "authorization_code",
                    "redirect_uri": self.prepare_redirect_uri(redirect_uri),
                    "code": code,
                }
            ),
        )
        return TokenSet(
            access_token=self._require(
                payload, "access_token", operation="token_exchange"
            ),
            expires_in=self._expires_in(payload, default=_DEFAULT_EXPIRES_IN),
        )

    async def fetch_identity(self, access_token: str) -> ProviderIdentity:
        payload = await self._request_json(
            "GET",
            self.config.identity_url,
            operation="fetch_identity",
            params={"fields": "id,username", "access_token": access_token},
        )
        return ProviderIdentity(
            id=self._require(payload, "id", operation="fetch_identity"),
            username=payload.get("username"),
        )

    async def revoke_token(self, *, access_token: str, provider_id: str) -> None:
        await self._request_json(
            "DELETE",
            self.config.revoke_url.format(provider_id=provider_id),
            operation="revoke_token",
            params={"access_token": access_token},
        )
