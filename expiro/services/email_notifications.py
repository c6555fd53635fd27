"""Email rendering and delivery for expiry reminders."""

import logging
import typing as t
from dataclasses import dataclass
from datetime import datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr
from pathlib import Path

import aiosmtplib
from jinja2 import Environment, FileSystemLoader, select_autoescape

from expiro.core.config import SETTINGS, Settings
from expiro.core.models import UserProfile
from expiro.services.user_directory import display_name_for

LOGGER = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).parent.parent / "templates"
EMAIL_ENV = Environment(
    loader=FileSystemLoader(TEMPLATES_DIR),
    autoescape=select_autoescape(["html", "xml"]),
)


@dataclass(frozen=True)
class DeliveryResult:
    """Outcome reported by a mail transport."""

    ok: bool
    error: str | None = None


class MailTransport(t.Protocol):  # pylint: disable=too-few-public-methods
    """Anything able to deliver a rendered email."""

    async def send(
        self,
        to_email: str,
        subject: str,
        html_body: str,
        text_body: str | None = None,
    ) -> DeliveryResult:
        """Deliver one email and report the outcome."""


class SmtpMailTransport:  # pylint: disable=too-few-public-methods
    """Mail transport delivering through an SMTP relay."""

    settings: Settings

    def __init__(self, settings: Settings | None = None) -> None:
        """Initialize SmtpMailTransport.

        Args:
            settings (Settings | None):
                SMTP settings. Defaults to the application settings.
        """
        self.settings = settings or SETTINGS

    def build_message(
        self,
        to_email: str,
        subject: str,
        html_body: str,
        text_body: str | None = None,
    ) -> MIMEMultipart:
        """Build the MIME message for an email.

        Args:
            to_email (str): Recipient email address.
            subject (str): Email subject.
            html_body (str): HTML email body.
            text_body (str | None): Optional plain text alternative.

        Returns:
            MIMEMultipart: The message, ready to send.
        """
        message: MIMEMultipart = MIMEMultipart("alternative")
        message["From"] = formataddr(
            (self.settings.smtp_from_name, self.settings.smtp_from_email)
        )
        message["To"] = to_email
        message["Subject"] = subject

        if text_body is not None:
            message.attach(MIMEText(text_body, "plain"))
        message.attach(MIMEText(html_body, "html"))
        return message

    async def send(
        self,
        to_email: str,
        subject: str,
        html_body: str,
        text_body: str | None = None,
    ) -> DeliveryResult:
        """Send an email to a single recipient.

        Args:
            to_email (str): Recipient email address.
            subject (str): Email subject.
            html_body (str): HTML email body.
            text_body (str | None): Optional plain text alternative.

        Returns:
            DeliveryResult: Whether the relay accepted the message.
        """
        if not self.settings.smtp_enabled:
            LOGGER.debug("SMTP not enabled, skipping email")
            return DeliveryResult(ok=False, error="SMTP is not enabled")

        if not to_email:
            LOGGER.warning("No recipient email provided")
            return DeliveryResult(ok=False, error="No recipient address")

        message: MIMEMultipart = self.build_message(
            to_email, subject, html_body, text_body
        )
        try:
            await aiosmtplib.send(
                message,
                hostname=self.settings.smtp_host,
                port=self.settings.smtp_port,
                username=self.settings.smtp_user or None,
                password=self.settings.smtp_password or None,
                use_tls=self.settings.smtp_port == 465,
                start_tls=self.settings.smtp_port == 587,
                timeout=10,
            )
        except (aiosmtplib.SMTPException, OSError) as exc:
            LOGGER.warning("Failed to send email to %s: %s", to_email, exc)
            return DeliveryResult(ok=False, error=str(exc) or repr(exc))

        LOGGER.info("Email sent to %s", to_email)
        return DeliveryResult(ok=True)


def render_template(template_name: str, **context: t.Any) -> str:
    """Render a Jinja2 email template with the given context.

    Args:
        template_name (str): The name of the template file.
        **context: Context variables for rendering the template.

    Returns:
        str: The rendered template as a string.
    """
    return EMAIL_ENV.get_template(template_name).render(**context)


def format_display_date(value: t.Any) -> str:
    """Format a date like "23 Jan 2026"."""
    return f"{value.day} {value:%b %Y}"


def format_long_datetime(value: datetime) -> str:
    """Format a datetime like "Wednesday, January 14, 2026 at 8:30 AM"."""
    hour: int = value.hour % 12 or 12
    return (
        f"{value:%A, %B} {value.day}, {value.year} at "
        f"{hour}:{value:%M %p}"
    )


EMAIL_ENV.filters["display_date"] = format_display_date
EMAIL_ENV.filters["long_datetime"] = format_long_datetime


def build_reminder_subject(
    products_count: int,
    batch_number: int | None = None,
) -> str:
    """Build the subject line of a reminder email.

    Args:
        products_count (int): Number of products in the email.
        batch_number (int | None): 1-based batch number for split runs.

    Returns:
        str: The subject line.
    """
    plural: str = "s" if products_count != 1 else ""
    subject: str = (
        f"⚠️ [{SETTINGS.app_name}] Daily expiry alert - "
        f"{products_count} product{plural} need attention"
    )
    if batch_number is not None:
        subject += f" (part {batch_number})"
    return subject


def format_reminder_emails(
    grouped: t.Sequence[t.Dict[str, t.Any]],
    profile: UserProfile,
    generated_at: datetime,
) -> t.Tuple[str, str]:
    """Render the HTML and plain text bodies of a reminder email.

    Args:
        grouped (t.Sequence[t.Dict[str, t.Any]]):
            Non-empty buckets, each with ``bucket`` and ``products`` keys.
        profile (UserProfile):
            The recipient.
        generated_at (datetime):
            Timestamp shown in the email header.

    Returns:
        t.Tuple[str, str]: The HTML body and the plain text body.
    """
    context: t.Dict[str, t.Any] = {
        "display_name": display_name_for(profile),
        "groups": grouped,
        "total_products": sum(len(group["products"]) for group in grouped),
        "generated_at": generated_at,
        "app_name": SETTINGS.app_name,
        "app_url": SETTINGS.app_url,
    }
    return (
        render_template("emails/expiry_alert.html", **context),
        render_template("emails/expiry_alert.txt", **context),
    )


async def send_test_email(
    profile: UserProfile, transport: MailTransport
) -> DeliveryResult:
    """Send a test email to verify email notifications are working.

    Args:
        profile (UserProfile):
            The user to send the test email to.
        transport (MailTransport):
            The mail transport to use.

    Returns:
        DeliveryResult: The delivery outcome.
    """
    if not profile.email:
        return DeliveryResult(ok=False, error="No email address on profile")

    subject: str = f"✅ [{SETTINGS.app_name}] Test Email"
    context: t.Dict[str, t.Any] = {
        "display_name": display_name_for(profile),
        "app_name": SETTINGS.app_name,
        "app_url": SETTINGS.app_url,
    }

    return await transport.send(
        to_email=profile.email,
        subject=subject,
        html_body=render_template("emails/test_email.html", **context),
        text_body=render_template("emails/test_email.txt", **context),
    )
