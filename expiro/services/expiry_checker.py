"""Background job refreshing product statuses and sending reminders."""

import asyncio
import logging
import typing as t
from datetime import date, datetime

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from expiro.core.config import SETTINGS
from expiro.core.database import ASYNC_SESSION_MAKER, close_db, init_db
from expiro.core.session import SessionClient
from expiro.schemas.notifications import DispatchReport
from expiro.services.email_notifications import (
    MailTransport,
    SmtpMailTransport,
)
from expiro.services.notification_dispatcher import NotificationDispatcher
from expiro.services.product_service import refresh_product_statuses
from expiro.utils.dates import as_utc, today, utcnow

LOGGER = logging.getLogger(__name__)


async def run_expiry_check(
    session_maker: async_sessionmaker[AsyncSession] | None = None,
    transport: MailTransport | None = None,
    now: datetime | None = None,
    send_emails: bool | None = None,
) -> DispatchReport | None:
    """Refresh cached product statuses and run the notification dispatcher.

    Args:
        session_maker (async_sessionmaker[AsyncSession] | None):
            Session factory, defaults to the application one.
        transport (MailTransport | None):
            Mail transport, defaults to SMTP.
        now (datetime | None):
            Clock override.
        send_emails (bool | None):
            Whether to dispatch emails. Defaults to whether SMTP is enabled.

    Returns:
        DispatchReport | None:
            The dispatcher report, or None when emails are disabled.
    """
    now = as_utc(now or utcnow())
    on_day: date = today(now)
    maker: async_sessionmaker[AsyncSession] = (
        session_maker or ASYNC_SESSION_MAKER
    )

    async with maker() as session:
        await refresh_product_statuses(session, on_day)
        await session.commit()

        if not (SETTINGS.smtp_enabled if send_emails is None else send_emails):
            LOGGER.debug("SMTP not enabled, skipping email notifications")
            return None

        dispatcher: NotificationDispatcher = NotificationDispatcher(
            SessionClient(session), transport or SmtpMailTransport()
        )
        return await dispatcher.run(now)


async def check_expiring_products_task() -> None:
    """Scheduled task: check for due products and send notifications."""
    LOGGER.info("Running expiry check...")

    try:
        report: DispatchReport | None = await run_expiry_check()
        if report is not None:
            LOGGER.info(
                "Dispatch %s for %s: %d sent, %d failed, %d remaining",
                report.outcome.value,
                report.run_date,
                report.emails_sent,
                report.emails_failed,
                report.remaining_products,
            )

    except Exception:  # pylint: disable=broad-except
        LOGGER.exception("Error in expiry check task")


async def _run_once() -> DispatchReport | None:
    await init_db()
    try:
        return await run_expiry_check()
    finally:
        await close_db()


def main() -> None:
    """Entry point for external schedulers: run one invocation and exit."""
    logging.basicConfig(
        level=logging.DEBUG if SETTINGS.debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    report: DispatchReport | None = asyncio.run(_run_once())
    summary: t.Dict[str, t.Any] = (
        report.model_dump(mode="json", exclude={"results"})
        if report is not None
        else {"outcome": "disabled"}
    )
    LOGGER.info("Expiry check finished: %s", summary)


if __name__ == "__main__":
    main()
