"""Session-aware persistence client.

A ``SessionClient`` bundles the database session with the identity of the
caller. Services receive it explicitly instead of reaching for a global
client, and callers that need to react to an expired session (for example
by sending the user back to the login screen) subscribe to it.
"""

import logging
import typing as t

from sqlalchemy.ext.asyncio import AsyncSession

from expiro.core.database import translate_db_errors
from expiro.core.errors import UnauthenticatedError
from expiro.schemas.auth import Identity

LOGGER: logging.Logger = logging.getLogger(__name__)


class IdentityProvider(t.Protocol):  # pylint: disable=too-few-public-methods
    """Anything able to tell who the caller is."""

    session_expired: bool

    def get_current_user(self) -> Identity | None:
        """Return the caller identity, or None when there is none."""


class StaticIdentityProvider:  # pylint: disable=too-few-public-methods
    """Identity provider returning a fixed identity."""

    session_expired: bool = False

    def __init__(self, identity: Identity | None) -> None:
        self.identity = identity

    def get_current_user(self) -> Identity | None:
        """Return the fixed identity."""
        return self.identity


class SessionClient:
    """Database session bound to the caller's identity."""

    db: AsyncSession

    def __init__(
        self,
        db: AsyncSession,
        identity_provider: IdentityProvider | None = None,
    ) -> None:
        """Initialize SessionClient.

        Args:
            db (AsyncSession):
                The database session.
            identity_provider (IdentityProvider | None):
                Where the caller identity comes from. Background jobs run
                without one.
        """
        self.db = db
        self.identity_provider = identity_provider or StaticIdentityProvider(
            None
        )
        self._expired_listeners: t.List[t.Callable[[], None]] = []

    def on_session_expired(self, callback: t.Callable[[], None]) -> None:
        """Subscribe to session expiry.

        Args:
            callback (t.Callable[[], None]):
                Called when an operation is rejected because the caller's
                session has expired.
        """
        self._expired_listeners.append(callback)

    async def commit(self, action: str = "save changes") -> None:
        """Commit the pending changes of the session.

        Args:
            action (str): Short description of the operation, for logging.
        """
        with translate_db_errors(action):
            await self.db.commit()

    def get_current_user(self) -> Identity | None:
        """Get the caller identity.

        Returns:
            Identity | None: The caller identity, if any.
        """
        return self.identity_provider.get_current_user()

    def require_user(self) -> Identity:
        """Get the caller identity or fail.

        Returns:
            Identity: The caller identity.
        """
        identity: Identity | None = self.get_current_user()
        if identity is not None:
            return identity

        if self.identity_provider.session_expired:
            for callback in self._expired_listeners:
                callback()
            raise UnauthenticatedError("Session expired. Please log in again.")

        raise UnauthenticatedError()
