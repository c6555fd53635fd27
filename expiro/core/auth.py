"""Identity provider integration.

Tokens are issued by an external identity provider; this module only
verifies them and turns their claims into an ``Identity``.
"""

import logging
import typing as t
from datetime import datetime, timedelta, timezone

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import ExpiredSignatureError, JWTError, jwt
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from expiro.core.config import SETTINGS
from expiro.core.database import get_db
from expiro.core.session import SessionClient
from expiro.schemas.auth import Identity, TokenData

LOGGER: logging.Logger = logging.getLogger(__name__)

BEARER_SCHEME: HTTPBearer = HTTPBearer(auto_error=False)


class TokenIdentityProvider:
    """Resolve the caller identity from a bearer token."""

    token: str | None
    session_expired: bool

    def __init__(self, token: str | None) -> None:
        """Initialize TokenIdentityProvider.

        Args:
            token (str | None): The raw bearer token, if any.
        """
        self.token = token
        self.session_expired = False
        self._identity: Identity | None = None
        self._resolved = False

    def get_current_user(self) -> Identity | None:
        """Verify the token and return the identity it carries.

        Returns:
            Identity | None: The caller identity, or None if the token is
            missing, invalid or expired.
        """
        if not self._resolved:
            self._identity = self._decode()
            self._resolved = True
        return self._identity

    def _decode(self) -> Identity | None:
        if not self.token:
            return None
        options: t.Dict[str, bool] = {
            "verify_aud": SETTINGS.jwt_audience is not None
        }
        try:
            payload: t.Dict[str, t.Any] = jwt.decode(
                self.token,
                SETTINGS.jwt_secret,
                algorithms=[SETTINGS.jwt_algorithm],
                audience=SETTINGS.jwt_audience,
                options=options,
            )
            token_data: TokenData = TokenData(
                sub=payload.get("sub"), email=payload.get("email")
            )
        except ExpiredSignatureError:
            LOGGER.debug("Rejected expired token")
            self.session_expired = True
            return None
        except (JWTError, ValidationError):
            LOGGER.debug("Rejected invalid token")
            return None

        if not token_data.sub:
            return None

        return Identity(user_id=token_data.sub, email=token_data.email)


def create_access_token(
    data: t.Dict[str, t.Any], expires_delta: timedelta | None = None
) -> str:
    """Create a JWT the way the identity provider does.

    Used by the test suite and by local tooling; production tokens come from
    the identity provider.

    Args:
        data (t.Dict[str, t.Any]):
            The claims to encode in the token.
        expires_delta (timedelta | None):
            Optional lifetime of the token. Defaults to one hour.

    Returns:
        str: The encoded JWT token.
    """
    to_encode: t.Dict[str, t.Any] = data.copy()
    expire: datetime = datetime.now(timezone.utc) + (
        expires_delta if expires_delta is not None else timedelta(hours=1)
    )
    to_encode.update({"exp": expire})
    if SETTINGS.jwt_audience is not None:
        to_encode.setdefault("aud", SETTINGS.jwt_audience)
    return str(
        jwt.encode(
            to_encode, SETTINGS.jwt_secret, algorithm=SETTINGS.jwt_algorithm
        )
    )


async def get_session_client(
    credentials: t.Annotated[
        HTTPAuthorizationCredentials | None, Depends(BEARER_SCHEME)
    ],
    db: t.Annotated[AsyncSession, Depends(get_db)],
) -> SessionClient:
    """Dependency to get a session client bound to the caller.

    Args:
        credentials (HTTPAuthorizationCredentials | None):
            The bearer credentials from the Authorization header.
        db (AsyncSession):
            The database session.

    Returns:
        SessionClient: The session client for this request.
    """
    provider: TokenIdentityProvider = TokenIdentityProvider(
        credentials.credentials if credentials is not None else None
    )
    client: SessionClient = SessionClient(db, provider)
    client.on_session_expired(
        lambda: LOGGER.info("Request rejected: session expired")
    )
    return client
