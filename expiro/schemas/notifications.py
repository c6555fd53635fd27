"""Schemas for notifications, profiles and dispatch reports."""

import enum
import typing as t
from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field

from expiro.core.models import (
    NotificationChannel,
    NotificationPolicy,
    NotificationStatus,
)


class ProfileUpdate(BaseModel):
    """Profile settings the user can change."""

    display_name: str | None = Field(None, max_length=100)
    email_notifications_enabled: bool | None = None


class ProfileResponse(BaseModel):
    """Profile response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str | None = None
    display_name: str | None = None
    email_notifications_enabled: bool
    smtp_configured: bool = False


class NotificationResponse(BaseModel):
    """A single delivery attempt."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    channel: NotificationChannel
    status: NotificationStatus
    products_count: int
    error_message: str | None = None
    sent_at: datetime
    batch_index: int | None = None


class NotificationListResponse(BaseModel):
    """Delivery history of the current user."""

    items: t.List[NotificationResponse]
    total: int


class DispatchOutcome(str, enum.Enum):
    """Terminal state of a dispatcher invocation."""

    DISPATCHED = "dispatched"
    RATE_LIMITED = "rate_limited"
    NOTHING_DUE = "nothing_due"
    NO_RECIPIENTS = "no_recipients"
    DEFERRED = "deferred"
    COMPLETED = "completed"


class DeliveryLog(BaseModel):
    """Outcome of one delivery attempt within a run."""

    user_id: str
    email: str
    status: NotificationStatus
    products: int
    batch_index: int


class DispatchReport(BaseModel):
    """Summary returned by a dispatcher invocation."""

    outcome: DispatchOutcome
    run_date: date
    policy: NotificationPolicy
    emails_sent: int = 0
    emails_failed: int = 0
    batches_sent: int = 0
    products_count: int = 0
    carried_products: int = 0
    users_count: int = 0
    remaining_products: int = 0
    sent_today: int = 0
    next_eligible_at: datetime | None = None
    results: t.List[DeliveryLog] = Field(default_factory=list)
