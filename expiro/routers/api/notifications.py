"""Email notification API endpoints."""

import typing as t

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select

from expiro.core.auth import get_session_client
from expiro.core.config import SETTINGS
from expiro.core.database import translate_db_errors
from expiro.core.errors import ExpiroError
from expiro.core.models import Notification, UserProfile
from expiro.core.session import SessionClient
from expiro.routers.api.errors import to_http_exception
from expiro.schemas.auth import Identity
from expiro.schemas.notifications import (
    NotificationListResponse,
    NotificationResponse,
)
from expiro.services import MailTransport, SmtpMailTransport, UserDirectory
from expiro.services.email_notifications import DeliveryResult, send_test_email

ROUTER = APIRouter(prefix="/notifications", tags=["Notifications"])


def get_mail_transport() -> MailTransport:
    """Dependency to get the mail transport.

    Returns:
        MailTransport: The configured mail transport.
    """
    return SmtpMailTransport()


@ROUTER.get("", response_model=NotificationListResponse)
async def list_notifications(
    client: t.Annotated[SessionClient, Depends(get_session_client)],
    limit: int = Query(50, ge=1, le=200, description="Maximum records"),
) -> NotificationListResponse:
    """Get the caller's most recent delivery attempts.

    Args:
        client (SessionClient): The session client of the caller.
        limit (int): Maximum number of records to return.

    Returns:
        NotificationListResponse: The delivery history, newest first.
    """
    try:
        identity: Identity = client.require_user()
        with translate_db_errors("list notifications"):
            notifications: t.Sequence[Notification] = (
                (
                    await client.db.execute(
                        select(Notification)
                        .where(Notification.user_id == identity.user_id)
                        .order_by(
                            Notification.sent_at.desc(), Notification.id.desc()
                        )
                        .limit(limit)
                    )
                )
                .scalars()
                .all()
            )
    except ExpiroError as exc:
        raise to_http_exception(exc) from exc

    items: t.List[NotificationResponse] = [
        NotificationResponse.model_validate(notification)
        for notification in notifications
    ]
    return NotificationListResponse(items=items, total=len(items))


@ROUTER.post("/email/test")
async def send_test_email_notification(
    client: t.Annotated[SessionClient, Depends(get_session_client)],
    transport: t.Annotated[MailTransport, Depends(get_mail_transport)],
) -> t.Dict[str, t.Any]:
    """Send a test email to verify email notifications are working.

    Args:
        client (SessionClient):
            The session client of the caller.
        transport (MailTransport):
            The mail transport.

    Returns:
        Dict[str, Any]: A dictionary indicating success or failure.
    """
    if not SETTINGS.smtp_enabled:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Email notifications not configured. SMTP is not enabled.",
        )

    try:
        identity: Identity = client.require_user()
        with translate_db_errors("load profile"):
            profile: UserProfile = await UserDirectory(
                client.db
            ).ensure_profile(identity)
        await client.commit("load profile")
    except ExpiroError as exc:
        raise to_http_exception(exc) from exc

    if not profile.email_notifications_enabled:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=(
                "Email notifications not enabled "
                "for your account. Enable them first."
            ),
        )

    result: DeliveryResult = await send_test_email(profile, transport)
    if result.ok:
        return {"success": True, "message": "Test email sent successfully"}

    raise HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Failed to send test email: {result.error}",
    )
