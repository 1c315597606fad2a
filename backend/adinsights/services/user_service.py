"""User profile and aggregate statistics.

Profile reads never expose provider tokens. Profile updates sanitize the
username and normalize the email before they reach the database.
"""

import logging
import uuid

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from adinsights.core.errors import ConflictError, NotFoundError, ValidationError
from adinsights.repositories.auth_provider_repository import AuthProviderRepository
from adinsights.repositories.user_repository import UserRepository
from adinsights.schemas.auth import LinkedProvider, UserProfile, UserStats

logger = logging.getLogger(__name__)


async def get_profile(db: AsyncSession, user_id: uuid.UUID) -> UserProfile:
    """Load a user with every linked provider.

    Raises:
        NotFoundError: If the user no longer exists.
    """
    user = await UserRepository.get_by_id(db, user_id)
    if user is None:
        raise NotFoundError("User")

    records = await AuthProviderRepository.list_for_user(db, user.id)
    return UserProfile(
        id=user.id,
        email=user.email,
        username=user.username,
        created_at=user.created_at,
        updated_at=user.updated_at,
        auth_providers=[
            LinkedProvider(
                provider=record.provider,
                provider_id=record.provider_id,
                username=record.username,
                email=record.email,
                expires_at=record.expires_at,
                advertising_account_id=record.advertising_account_id,
                is_expired=AuthProviderRepository.is_token_expired(record),
                needs_refresh=AuthProviderRepository.needs_refresh(record),
                created_at=record.created_at,
                updated_at=record.updated_at,
            )
            for record in records
        ],
    )


async def update_profile(
    db: AsyncSession,
    user_id: uuid.UUID,
    *,
    username: str | None = None,
    email: str | None = None,
) -> UserProfile:
    """Update username and/or email.

    Raises:
        ValidationError: If the username is empty or too long after
            sanitization.
        ConflictError: If the email already belongs to another user.
        NotFoundError: If the user no longer exists.
    """
    try:
        async with db.begin_nested():
            user = await UserRepository.update(
                db, user_id, username=username, email=email
            )
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc
    except IntegrityError:
        logger.info("Profile email already taken", extra={"user_id": str(user_id)})
        raise ConflictError(
            code="EMAIL_TAKEN",
            message="This email is already in use",
        ) from None

    if user is None:
        raise NotFoundError("User")
    return await get_profile(db, user_id)


async def get_user_stats(db: AsyncSession) -> UserStats:
    """Total users and connection counts per provider."""
    return UserStats(
        total_users=await UserRepository.count(db),
        provider_stats=await AuthProviderRepository.provider_counts(db),
    )
