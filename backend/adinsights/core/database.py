"""Async database engine and session management.

Configures the SQLAlchemy async engine and provides dependency injection
for database sessions.
"""

import logging
from collections.abc import AsyncGenerator, Iterator
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from adinsights.core.config import settings
from adinsights.core.errors import DatabaseError

logger = logging.getLogger(__name__)

engine = create_async_engine(
    settings.database_url,
    echo=settings.environment == "development",
    pool_pre_ping=True,
)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency that provides a database session."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@contextmanager
def translate_db_errors(operation: str) -> Iterator[None]:
    """Convert driver-level failures into a generic DatabaseError.

    The original exception is logged server-side and chained; clients only
    ever see the generic DatabaseError message.

    Args:
        operation: Short label for the failing operation, used in logs.

    Raises:
        DatabaseError: If the wrapped block raises SQLAlchemyError.
    """
    try:
        yield
    except SQLAlchemyError as exc:
        logger.exception("Database operation failed", extra={"operation": operation})
        raise DatabaseError() from exc
