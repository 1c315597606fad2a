"""Auth and account response schemas.

Field names serialize as camelCase (authUrl, createdAt, ...) to match
what the dashboard frontend reads.
"""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )


# =============================================================================
# Login / logout
# =============================================================================


class LoginResponse(_CamelModel):
    """Response for POST /auth/{provider}/login.

    Attributes:
        auth_url: Provider authorization URL the browser should open.
    """

    auth_url: str


class LogoutResponse(_CamelModel):
    """Response for the logout endpoints.

    Attributes:
        success: Always True; revocation failures are logged only.
        removed: Number of provider connections removed.
    """

    success: bool = True
    removed: int = 0


# =============================================================================
# Status
# =============================================================================


class ProviderStatus(_CamelModel):
    """Which providers have an active (non-expired) connection."""

    facebook: bool = False
    instagram: bool = False
    twitter: bool = False


class FacebookSessionInfo(_CamelModel):
    """Facebook session cache without the access token."""

    user_id: str
    name: str | None = None
    email: str | None = None
    expires_at: int | None = None
    config_id: str | None = None


class InstagramSessionInfo(_CamelModel):
    """Instagram session cache without the access token."""

    user_id: str
    username: str | None = None
    expires_at: int | None = None


class TwitterSessionInfo(_CamelModel):
    """Twitter session cache without tokens."""

    user_id: str
    username: str | None = None
    expires_at: int | None = None


class SessionInfo(_CamelModel):
    """Per-provider session cache."""

    facebook: FacebookSessionInfo | None = None
    instagram: InstagramSessionInfo | None = None
    twitter: TwitterSessionInfo | None = None


class StatusUser(_CamelModel):
    """Summary of the signed-in user.

    Attributes:
        auth_providers: Number of active provider connections.
    """

    id: uuid.UUID
    email: str
    username: str | None = None
    created_at: datetime
    auth_providers: int


class AuthStatusResponse(_CamelModel):
    """Response for GET /auth/status."""

    status: ProviderStatus
    session: SessionInfo
    user: StatusUser | None = None


# =============================================================================
# Profile / admin
# =============================================================================


class LinkedProvider(_CamelModel):
    """One provider connection, tokens omitted."""

    provider: str
    provider_id: str
    username: str | None = None
    email: str | None = None
    expires_at: datetime | None = None
    advertising_account_id: str | None = None
    is_expired: bool
    needs_refresh: bool
    created_at: datetime
    updated_at: datetime


class UserProfile(_CamelModel):
    """Response for GET/PUT /users/profile."""

    id: uuid.UUID
    email: str
    username: str | None = None
    created_at: datetime
    updated_at: datetime
    auth_providers: list[LinkedProvider]


class UserStats(_CamelModel):
    """Response for GET /admin/stats.

    Attributes:
        total_users: Number of local users.
        provider_stats: Connection count per provider.
    """

    total_users: int
    provider_stats: dict[str, int]
