"""Repository for AuthProvider token records.

The auth_providers table is the authoritative view of which external
accounts are connected. Rows are keyed by (provider, provider_id) and
upserted on reconnect. Expired rows are soft-expired: excluded from
list_active() but left in place until explicitly removed.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from adinsights.core.database import translate_db_errors
from adinsights.models.auth_provider import AuthProvider

logger = logging.getLogger(__name__)

# Tokens expiring within this window should be refreshed proactively
TOKEN_REFRESH_THRESHOLD = timedelta(minutes=5)


@dataclass
class AuthProviderInput:
    """Token set and identity to store for one provider connection.

    Attributes:
        provider: Provider name.
        provider_id: Provider's unique account ID.
        access_token: Access token from the token exchange.
        refresh_token: Refresh token, if issued.
        expires_at: Absolute expiry, or None if the token never expires.
        username: Provider display name or handle.
        email: Email reported by the provider.
        advertising_account_id: Facebook primary ad account.
        business_accounts: Facebook businesses snapshot.
        ad_accounts: Facebook ad accounts snapshot.
        config_id: Facebook business login configuration ID.
    """

    provider: str
    provider_id: str
    access_token: str
    refresh_token: str | None = None
    expires_at: datetime | None = None
    username: str | None = None
    email: str | None = None
    advertising_account_id: str | None = None
    business_accounts: list[dict[str, Any]] = field(default_factory=list)
    ad_accounts: list[dict[str, Any]] = field(default_factory=list)
    config_id: str | None = None

    def token_fields(self) -> dict[str, Any]:
        """Columns refreshed on every reconnect."""
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_at": self.expires_at,
            "username": self.username,
            "email": self.email,
            "advertising_account_id": self.advertising_account_id,
            "business_accounts": self.business_accounts,
            "ad_accounts": self.ad_accounts,
            "config_id": self.config_id,
        }


def _as_utc(value: datetime) -> datetime:
    # sqlite drops tzinfo on round-trip; stored values are always UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class AuthProviderRepository:
    """Stateless repository for AuthProvider table operations.

    All methods are static; no instance state. Pass an AsyncSession
    for every call so the caller controls transaction boundaries.
    """

    @staticmethod
    async def find_by_provider(
        db: AsyncSession,
        provider: str,
        provider_id: str,
    ) -> AuthProvider | None:
        """Find a token record by its natural key.

        Args:
            db: Async database session.
            provider: Provider name (e.g., "facebook").
            provider_id: Provider's unique account ID.

        Returns:
            AuthProvider if found, None otherwise.
        """
        stmt = select(AuthProvider).where(
            AuthProvider.provider == provider,
            AuthProvider.provider_id == provider_id,
        )
        with translate_db_errors("auth_provider.find_by_provider"):
            result = await db.execute(stmt)
            return result.scalar_one_or_none()

    @staticmethod
    async def get_for_user(
        db: AsyncSession,
        user_id: uuid.UUID,
        provider: str,
    ) -> AuthProvider | None:
        """Find a user's connection for one provider, if any."""
        stmt = (
            select(AuthProvider)
            .where(
                AuthProvider.user_id == user_id,
                AuthProvider.provider == provider,
            )
            .order_by(AuthProvider.updated_at.desc())
            .limit(1)
        )
        with translate_db_errors("auth_provider.get_for_user"):
            result = await db.execute(stmt)
            return result.scalar_one_or_none()

    @staticmethod
    async def list_for_user(
        db: AsyncSession,
        user_id: uuid.UUID,
    ) -> list[AuthProvider]:
        """List every connection of a user, expired ones included."""
        stmt = (
            select(AuthProvider)
            .where(AuthProvider.user_id == user_id)
            .order_by(AuthProvider.created_at)
        )
        with translate_db_errors("auth_provider.list_for_user"):
            result = await db.execute(stmt)
            return list(result.scalars().all())

    @staticmethod
    async def list_active(
        db: AsyncSession,
        user_id: uuid.UUID,
        *,
        now: datetime | None = None,
    ) -> list[AuthProvider]:
        """List connections whose token has not expired.

        Rows with expires_at NULL never expire. Expired rows are excluded
        but not deleted.

        Args:
            db: Async database session.
            user_id: UUID of the owning user.
            now: Reference time. Defaults to the current UTC time.

        Returns:
            Active AuthProvider rows (may be empty).
        """
        now = now or datetime.now(UTC)
        stmt = (
            select(AuthProvider)
            .where(
                AuthProvider.user_id == user_id,
                or_(
                    AuthProvider.expires_at.is_(None),
                    AuthProvider.expires_at > now,
                ),
            )
            .order_by(AuthProvider.created_at)
        )
        with translate_db_errors("auth_provider.list_active"):
            result = await db.execute(stmt)
            return list(result.scalars().all())

    @staticmethod
    async def upsert(
        db: AsyncSession,
        user_id: uuid.UUID,
        data: AuthProviderInput,
    ) -> AuthProvider:
        """Insert or update the record for (provider, provider_id).

        The update path refreshes token, expiry, identity, and extra fields,
        bumps updated_at, and never changes the owning user. The create path
        attaches user_id. A concurrent insert of the same key is recovered
        through a savepoint: the loser updates the winner's row instead of
        violating the unique constraint.

        Args:
            db: Async database session.
            user_id: Owner to attach on create.
            data: Token set and identity to store.

        Returns:
            The created or updated AuthProvider.
        """
        with translate_db_errors("auth_provider.upsert"):
            existing = await AuthProviderRepository.find_by_provider(
                db, data.provider, data.provider_id
            )
            if existing is not None:
                return await AuthProviderRepository._apply_update(db, existing, data)

            try:
                async with db.begin_nested():
                    record = AuthProvider(
                        user_id=user_id,
                        provider=data.provider,
                        provider_id=data.provider_id,
                        **data.token_fields(),
                    )
                    db.add(record)
                    await db.flush()
            except IntegrityError:
                # Race condition: a concurrent callback linked the same account.
                # Savepoint was rolled back; session is still usable.
                existing = await AuthProviderRepository.find_by_provider(
                    db, data.provider, data.provider_id
                )
                if existing is None:
                    raise
                logger.info(
                    "Recovered concurrent auth provider insert",
                    extra={"provider": data.provider},
                )
                return await AuthProviderRepository._apply_update(db, existing, data)

            await db.refresh(record)
            return record

    @staticmethod
    async def _apply_update(
        db: AsyncSession,
        record: AuthProvider,
        data: AuthProviderInput,
    ) -> AuthProvider:
        for key, value in data.token_fields().items():
            setattr(record, key, value)
        record.updated_at = datetime.now(UTC)
        await db.flush()
        await db.refresh(record)
        return record

    @staticmethod
    async def remove(
        db: AsyncSession,
        provider: str,
        provider_id: str,
    ) -> bool:
        """Hard-delete the record for (provider, provider_id).

        Returns:
            True if a row was deleted, False if none existed.
        """
        stmt = delete(AuthProvider).where(
            AuthProvider.provider == provider,
            AuthProvider.provider_id == provider_id,
        )
        with translate_db_errors("auth_provider.remove"):
            result = await db.execute(stmt)
            return result.rowcount > 0

    @staticmethod
    async def provider_counts(db: AsyncSession) -> dict[str, int]:
        """Count connections per provider across all users."""
        stmt = select(AuthProvider.provider, func.count()).group_by(
            AuthProvider.provider
        )
        with translate_db_errors("auth_provider.provider_counts"):
            result = await db.execute(stmt)
            return {provider: count for provider, count in result.all()}

    @staticmethod
    def is_token_expired(record: AuthProvider, *, now: datetime | None = None) -> bool:
        """True when the token has an expiry and it is not in the future."""
        if record.expires_at is None:
            return False
        return (now or datetime.now(UTC)) >= _as_utc(record.expires_at)

    @staticmethod
    def needs_refresh(record: AuthProvider, *, now: datetime | None = None) -> bool:
        """True when the token expires within TOKEN_REFRESH_THRESHOLD.

        Only the predicate exists; no automatic refresh flow is run.
        """
        if record.expires_at is None:
            return False
        now = now or datetime.now(UTC)
        return _as_utc(record.expires_at) <= now + TOKEN_REFRESH_THRESHOLD
