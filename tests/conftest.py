"""Shared test fixtures.

- in-memory SQLite database per test (aiosqlite, static pool)
- session clients bound to test identities
- a mail transport that records instead of sending
"""

import typing as t
from datetime import date, datetime, timezone

import pytest
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from expiro.core import models  # noqa: F401  pylint: disable=unused-import
from expiro.core.database import Base
from expiro.core.session import SessionClient, StaticIdentityProvider
from expiro.schemas.auth import Identity
from expiro.services.email_notifications import DeliveryResult

NOW: datetime = datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc)
TODAY: date = NOW.date()


class RecordingTransport:  # pylint: disable=too-few-public-methods
    """Mail transport that keeps every message in memory."""

    def __init__(self) -> None:
        self.sent: t.List[t.Dict[str, t.Any]] = []
        self.fail_for: t.Set[str] = set()
        self.raise_for: t.Set[str] = set()

    async def send(
        self,
        to_email: str,
        subject: str,
        html_body: str,
        text_body: str | None = None,
    ) -> DeliveryResult:
        """Record the message and report the configured outcome."""
        self.sent.append(
            {
                "to": to_email,
                "subject": subject,
                "html": html_body,
                "text": text_body,
            }
        )
        if to_email in self.raise_for:
            raise ConnectionError("relay unreachable")
        if to_email in self.fail_for:
            return DeliveryResult(ok=False, error='{"message": "rejected"}')
        return DeliveryResult(ok=True)


@pytest.fixture
async def engine() -> t.AsyncGenerator[AsyncEngine, None]:
    """Create an in-memory database with all tables."""
    test_engine: AsyncEngine = create_async_engine(
        "sqlite+aiosqlite:///:memory:", poolclass=StaticPool
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test database."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def db(
    session_maker: async_sessionmaker[AsyncSession],
) -> t.AsyncGenerator[AsyncSession, None]:
    """Database session for a single test."""
    async with session_maker() as session:
        yield session


@pytest.fixture
def alice() -> Identity:
    """A signed-in user."""
    return Identity(user_id="user-alice", email="alice@example.com")


@pytest.fixture
def bob() -> Identity:
    """Another signed-in user."""
    return Identity(user_id="user-bob", email="bob@example.com")


@pytest.fixture
def client_for(
    db: AsyncSession,
) -> t.Callable[[Identity | None], SessionClient]:
    """Build session clients for a given identity."""

    def _client(identity: Identity | None) -> SessionClient:
        return SessionClient(db, StaticIdentityProvider(identity))

    return _client


@pytest.fixture
def transport() -> RecordingTransport:
    """Mail transport that records messages."""
    return RecordingTransport()
