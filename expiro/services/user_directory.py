"""User directory - profiles and notification recipients."""

import logging
import typing as t

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from expiro.core.models import UserProfile
from expiro.schemas.auth import Identity

LOGGER: logging.Logger = logging.getLogger(__name__)

DEFAULT_DISPLAY_NAME: str = "there"


class UserDirectory:
    """Service class for user profile lookups."""

    db: AsyncSession

    def __init__(self, db: AsyncSession) -> None:
        """Initialize UserDirectory.

        Args:
            db (AsyncSession): The database session.
        """
        self.db = db

    async def get_profile(self, user_id: str) -> UserProfile | None:
        """Get a profile by user ID.

        Args:
            user_id (str): The identity of the user.

        Returns:
            UserProfile | None: The profile if it exists.
        """
        return (
            await self.db.execute(
                select(UserProfile).where(UserProfile.id == user_id)
            )
        ).scalar_one_or_none()

    async def ensure_profile(self, identity: Identity) -> UserProfile:
        """Get the caller's profile, creating it on first use.

        The email address follows the identity provider: when the token
        carries a different address than the stored one, the stored one is
        updated.

        Args:
            identity (Identity): The caller identity.

        Returns:
            UserProfile: The caller's profile.
        """
        profile: UserProfile | None = await self.get_profile(identity.user_id)

        if profile is None:
            profile = UserProfile(id=identity.user_id, email=identity.email)
            self.db.add(profile)
            await self.db.flush()
            await self.db.refresh(profile)
            LOGGER.info("Registered profile for user %s", identity.user_id)
        elif identity.email and profile.email != identity.email:
            profile.email = identity.email
            await self.db.flush()

        return profile

    async def update_profile(
        self,
        identity: Identity,
        display_name: str | None = None,
        email_notifications_enabled: bool | None = None,
    ) -> UserProfile:
        """Update the caller's profile settings.

        Args:
            identity (Identity):
                The caller identity.
            display_name (str | None):
                New display name; blank clears it.
            email_notifications_enabled (bool | None):
                New notification opt-in.

        Returns:
            UserProfile: The updated profile.
        """
        profile: UserProfile = await self.ensure_profile(identity)

        if display_name is not None:
            profile.display_name = display_name.strip() or None
        if email_notifications_enabled is not None:
            profile.email_notifications_enabled = email_notifications_enabled

        await self.db.flush()
        await self.db.refresh(profile)
        return profile

    async def list_recipients(self) -> t.List[UserProfile]:
        """Get all users that should receive reminder emails.

        Returns:
            t.List[UserProfile]:
                Users with notifications enabled and an email address.
        """
        profiles: t.Sequence[UserProfile] = (
            (
                await self.db.execute(
                    select(UserProfile)
                    .where(
                        UserProfile.email_notifications_enabled.is_(True),
                        UserProfile.email.is_not(None),
                        UserProfile.email != "",
                    )
                    .order_by(UserProfile.created_at, UserProfile.id)
                )
            )
            .scalars()
            .all()
        )
        return list(profiles)


def display_name_for(profile: UserProfile) -> str:
    """Get the name to greet a user with.

    Args:
        profile (UserProfile): The user profile.

    Returns:
        str: The display name, or a neutral greeting.
    """
    return profile.display_name or DEFAULT_DISPLAY_NAME
