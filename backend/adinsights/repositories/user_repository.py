"""Repository for User CRUD operations.

Provides database access for the users table. Emails are normalized to
lowercase on every read and write path.
"""

import logging
import uuid

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from adinsights.core.database import translate_db_errors
from adinsights.core.validation import sanitize_email, sanitize_username
from adinsights.models.user import User

logger = logging.getLogger(__name__)

# Fields that may be updated via UserRepository.update().
# Security: Never add 'id', 'created_at', or 'updated_at'.
_UPDATABLE_FIELDS: frozenset[str] = frozenset({"username", "email"})


class UserRepository:
    """Stateless repository for User table operations.

    All methods are static; no instance state. Pass an AsyncSession
    for every call so the caller controls transaction boundaries.
    """

    @staticmethod
    async def get_by_id(db: AsyncSession, user_id: uuid.UUID) -> User | None:
        """Fetch a user by primary key.

        Args:
            db: Async database session.
            user_id: UUID primary key.

        Returns:
            User if found, None otherwise.
        """
        with translate_db_errors("user.get_by_id"):
            return await db.get(User, user_id)

    @staticmethod
    async def get_by_email(db: AsyncSession, email: str) -> User | None:
        """Fetch a user by email address (case-insensitive).

        Args:
            db: Async database session.
            email: Email address to look up.

        Returns:
            User if found, None otherwise.
        """
        stmt = select(User).where(User.email == sanitize_email(email))
        with translate_db_errors("user.get_by_email"):
            result = await db.execute(stmt)
            return result.scalar_one_or_none()

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        email: str,
        username: str | None = None,
    ) -> User:
        """Create a new user.

        Args:
            db: Async database session.
            email: User email address (normalized before storage).
            username: Display name.

        Returns:
            Created User with database-generated fields populated.

        Raises:
            sqlalchemy.exc.IntegrityError: If email already exists.
        """
        user = User(email=sanitize_email(email), username=username)
        db.add(user)
        await db.flush()
        await db.refresh(user)
        return user

    @staticmethod
    async def find_or_create_by_email(
        db: AsyncSession,
        *,
        email: str,
        username: str | None = None,
    ) -> tuple[User, bool]:
        """Return the user with this email, creating it if absent.

        Uses savepoint + IntegrityError recovery so two concurrent logins
        with the same email converge on one row.

        Args:
            db: Async database session.
            email: Email address (real or placeholder).
            username: Display name used only when creating.

        Returns:
            Tuple of (User, created).
        """
        with translate_db_errors("user.find_or_create_by_email"):
            existing = await UserRepository.get_by_email(db, email)
            if existing is not None:
                return existing, False

            try:
                async with db.begin_nested():
                    user = await UserRepository.create(
                        db, email=email, username=username
                    )
                return user, True
            except IntegrityError:
                # Race condition: another request created the same email.
                # Savepoint was rolled back; session is still usable.
                existing = await UserRepository.get_by_email(db, email)
                if existing is None:
                    raise
                return existing, False

    @staticmethod
    async def update(
        db: AsyncSession,
        user_id: uuid.UUID,
        **kwargs: str | None,
    ) -> User | None:
        """Update user fields.

        Only fields in _UPDATABLE_FIELDS are allowed. Username is sanitized
        and length-checked; email is trimmed and lowercased.

        Args:
            db: Async database session.
            user_id: UUID of the user to update.
            **kwargs: Field names and new values.

        Returns:
            Updated User, or None if not found.

        Raises:
            ValueError: If an unknown field is passed or a value is invalid.
            sqlalchemy.exc.IntegrityError: If the new email is taken.
        """
        invalid = set(kwargs) - _UPDATABLE_FIELDS
        if invalid:
            msg = f"Cannot update fields: {', '.join(sorted(invalid))}"
            raise ValueError(msg)

        user = await UserRepository.get_by_id(db, user_id)
        if user is None:
            return None

        if kwargs.get("username") is not None:
            user.username = sanitize_username(kwargs["username"])
        if kwargs.get("email") is not None:
            user.email = sanitize_email(kwargs["email"])

        await db.flush()
        await db.refresh(user)
        return user

    @staticmethod
    async def count(db: AsyncSession) -> int:
        """Count all users."""
        with translate_db_errors("user.count"):
            result = await db.execute(select(func.count()).select_from(User))
            return result.scalar_one()
