"""Profile endpoints."""

import typing as t

from fastapi import APIRouter, Depends

from expiro.core.auth import get_session_client
from expiro.core.config import SETTINGS
from expiro.core.database import translate_db_errors
from expiro.core.errors import ExpiroError
from expiro.core.models import UserProfile
from expiro.core.session import SessionClient
from expiro.routers.api.errors import to_http_exception
from expiro.schemas.auth import Identity
from expiro.schemas.notifications import ProfileResponse, ProfileUpdate
from expiro.services import UserDirectory

ROUTER = APIRouter(prefix="/profile", tags=["Profile"])


def _to_response(profile: UserProfile) -> ProfileResponse:
    return ProfileResponse(
        id=profile.id,
        email=profile.email,
        display_name=profile.display_name,
        email_notifications_enabled=profile.email_notifications_enabled,
        smtp_configured=SETTINGS.smtp_enabled,
    )


@ROUTER.get("", response_model=ProfileResponse)
async def get_profile(
    client: t.Annotated[SessionClient, Depends(get_session_client)],
) -> ProfileResponse:
    """Get the caller's profile, creating it on first use.

    Args:
        client (SessionClient): The session client of the caller.

    Returns:
        ProfileResponse: The caller's profile.
    """
    try:
        identity: Identity = client.require_user()
        with translate_db_errors("load profile"):
            profile: UserProfile = await UserDirectory(
                client.db
            ).ensure_profile(identity)
        await client.commit("load profile")
    except ExpiroError as exc:
        raise to_http_exception(exc) from exc

    return _to_response(profile)


@ROUTER.put("", response_model=ProfileResponse)
async def update_profile(
    profile_data: ProfileUpdate,
    client: t.Annotated[SessionClient, Depends(get_session_client)],
) -> ProfileResponse:
    """Update the caller's display name and notification opt-in.

    Args:
        profile_data (ProfileUpdate): The new profile settings.
        client (SessionClient): The session client of the caller.

    Returns:
        ProfileResponse: The updated profile.
    """
    try:
        identity: Identity = client.require_user()
        with translate_db_errors("update profile"):
            profile: UserProfile = await UserDirectory(
                client.db
            ).update_profile(
                identity,
                display_name=profile_data.display_name,
                email_notifications_enabled=(
                    profile_data.email_notifications_enabled
                ),
            )
        await client.commit("update profile")
    except ExpiroError as exc:
        raise to_http_exception(exc) from exc

    return _to_response(profile)
