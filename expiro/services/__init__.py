"""Services package."""

from expiro.services.email_notifications import (
    DeliveryResult,
    MailTransport,
    SmtpMailTransport,
)
from expiro.services.notification_dispatcher import NotificationDispatcher
from expiro.services.product_service import (
    ProductService,
    refresh_product_statuses,
)
from expiro.services.user_directory import UserDirectory

__all__ = [
    "DeliveryResult",
    "MailTransport",
    "NotificationDispatcher",
    "ProductService",
    "SmtpMailTransport",
    "UserDirectory",
    "refresh_product_statuses",
]
