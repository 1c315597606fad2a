"""Facebook Login for Business OAuth client.

Credentials are form-embedded in the token request. Business data
(Business Manager accounts and ad accounts) is fetched as best-effort
enrichment: a failure there never fails the login.
"""

import asyncio
from typing import Any

import structlog

from adinsights.providers.oauth.base import (
    BusinessData,
    OAuthClient,
    ProviderIdentity,
    TokenSet,
)

logger = structlog.get_logger()

# Facebook omits expires_in for some token types; treat those as one hour
_DEFAULT_EXPIRES_IN = 3600

_GRAPH_URL = "https://graph.facebook.com"

# account_status values Facebook uses for an active ad account
_ACTIVE_AD_ACCOUNT_STATUSES = (1, "ACTIVE")


class FacebookOAuthClient(OAuthClient):
    """OAuth client for Facebook.

    Args:
        config_id: Facebook Login for Business configuration ID. When set it
            is sent as ``config_id`` on the authorization URL.
        **kwargs: Passed through to OAuthClient.
    """

    provider_name = "facebook"

    def __init__(self, *, config_id: str | None = None, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.config_id = config_id or None

    def _extra_authorization_params(self) -> dict[str, str]:
        params = {"display": "popup"}
        if self.config_id:
            params["config_id"] = self.config_id
        return params

    async def exchange_code(
        self,
        *,
        code: str,
        redirect_uri: str,
        code_verifier: str | None = None,  # noqa: ARG002 - no PKCE for Facebook
    ) -> TokenSet:
        payload = await self._request_json(
            "POST",
            self.config.token_url,
            operation="token_exchange",
            **self._with_client_credentials(
                {
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
            params={"fields": "id,name,email", "access_token": access_token},
        )
        return ProviderIdentity(
            id=self._require(payload, "id", operation="fetch_identity"),
            name=payload.get("name"),
            email=payload.get("email"),
        )

    async def fetch_business_data(self, access_token: str) -> BusinessData:
        """Fetch businesses and ad accounts concurrently.

        Each half degrades independently: a failed request contributes an
        empty list and is logged.

        Args:
            access_token: Facebook user access token.

        Returns:
            BusinessData, possibly empty.
        """
        businesses, ad_accounts = await asyncio.gather(
            self._request_json(
                "GET",
                f"{_GRAPH_URL}/me/businesses",
                operation="fetch_businesses",
                params={
                    "fields": "id,name,verification_status",
                    "access_token": access_token,
                },
            ),
            self._request_json(
                "GET",
                f"{_GRAPH_URL}/me/adaccounts",
                operation="fetch_ad_accounts",
                params={
                    "fields": "id,name,account_status,business",
                    "access_token": access_token,
                },
            ),
            return_exceptions=True,
        )

        business_list = self._data_list(businesses, operation="fetch_businesses")
        ad_account_list = self._data_list(ad_accounts, operation="fetch_ad_accounts")

        primary = next(
            (
                account.get("id")
                for account in ad_account_list
                if account.get("account_status") in _ACTIVE_AD_ACCOUNT_STATUSES
            ),
            None,
        )
        return BusinessData(
            businesses=business_list,
            ad_accounts=ad_account_list,
            primary_ad_account_id=primary,
        )

    def _data_list(
        self, result: dict[str, Any] | BaseException, *, operation: str
    ) -> list[dict[str, Any]]:
        if isinstance(result, BaseException):
            logger.warning(
                "facebook_business_data_unavailable",
                operation=operation,
                error_type=type(result).__name__,
            )
            return []
        data = result.get("data")
        return data if isinstance(data, list) else []

    async def revoke_token(self, *, access_token: str, provider_id: str) -> None:
        await self._request_json(
            "DELETE",
            self.config.revoke_url.format(provider_id=provider_id),
            operation="revoke_token",
            params={"access_token": access_token},
        )
