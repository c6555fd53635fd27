"""Database configuration and session management."""

import logging
import typing as t
from contextlib import contextmanager

from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from expiro.core.config import SETTINGS
from expiro.core.errors import UnavailableError

LOGGER: logging.Logger = logging.getLogger(__name__)


class Base(DeclarativeBase):  # pylint: disable=too-few-public-methods
    """Base class for all database models."""


# Create async engine
ENGINE: AsyncEngine = create_async_engine(
    SETTINGS.database_url,
    echo=SETTINGS.debug,
    future=True,
)

# Create async session factory
ASYNC_SESSION_MAKER: async_sessionmaker[AsyncSession] = async_sessionmaker(
    ENGINE,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db() -> t.AsyncGenerator[AsyncSession, None]:
    """Dependency to get database session.

    Yields:
        AsyncSession: An asynchronous database session.
    """
    async with ASYNC_SESSION_MAKER() as session:
        try:
            yield session
            with translate_db_errors("commit request"):
                await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


@contextmanager
def translate_db_errors(action: str) -> t.Iterator[None]:
    """Turn connectivity failures into UnavailableError.

    Args:
        action (str): Short description of the operation, for logging.
    """
    try:
        yield
    except (OperationalError, InterfaceError) as exc:
        LOGGER.warning(
            "Storage unavailable while trying to %s: %s", action, exc
        )
        raise UnavailableError(
            f"Could not {action}: storage unavailable"
        ) from exc
    except DBAPIError as exc:
        if not exc.connection_invalidated:
            raise
        LOGGER.warning("Connection lost while trying to %s: %s", action, exc)
        raise UnavailableError(
            f"Could not {action}: connection lost"
        ) from exc


async def init_db() -> None:
    """Initialize database tables."""
    async with ENGINE.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Close database connection."""
    await ENGINE.dispose()
