"""AuthProvider model - one linked external account and its tokens.

(provider, provider_id) is unique: the same external account can never be
attached to two local users. Reconnecting updates the row in place.
"""

import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import (
    DateTime,
    ForeignKey,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from adinsights.models.base import Base, JSONType, TimestampMixin

if TYPE_CHECKING:
    from adinsights.models.user import User


class AuthProvider(Base, TimestampMixin):
    """Token record for one provider connection.

    Attributes:
        id: UUID primary key.
        user_id: FK to users table.
        provider: Provider name ("facebook", "instagram", "twitter").
        provider_id: Provider's unique account ID.
        access_token: Current access token.
        refresh_token: Refresh token, when the provider issues one.
        expires_at: Token expiry. NULL = never expires.
        username: Provider display name or handle.
        email: Email reported by the provider, if any.
        advertising_account_id: Primary active Facebook ad account.
        business_accounts: Facebook businesses snapshot.
        ad_accounts: Facebook ad accounts snapshot.
        config_id: Facebook business login configuration ID.
    """

    __tablename__ = "auth_providers"
    __table_args__ = (
        UniqueConstraint(
            "provider", "provider_id", name="uq_auth_providers_provider_id"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    provider: Mapped[str] = mapped_column(String(50), nullable=False)
    provider_id: Mapped[str] = mapped_column(String(255), nullable=False)
    access_token: Mapped[str] = mapped_column(Text(), nullable=False)
    refresh_token: Mapped[str | None] = mapped_column(Text(), nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    username: Mapped[str | None] = mapped_column(String(255), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    advertising_account_id: Mapped[str | None] = mapped_column(
        String(255), nullable=True
    )
    business_accounts: Mapped[list[dict[str, Any]] | None] = mapped_column(
        JSONType, nullable=True
    )
    ad_accounts: Mapped[list[dict[str, Any]] | None] = mapped_column(
        JSONType, nullable=True
    )
    config_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    user: Mapped["User"] = relationship(back_populates="auth_providers")
