"""SQLAlchemy database models."""

import enum
import typing as t
import uuid
from datetime import date, datetime, timezone

from sqlalchemy import (
    JSON,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from expiro.core.database import Base
from expiro.utils.expiry import ProductStatus, classify_status

__all__ = [
    "DispatchRun",
    "Notification",
    "NotificationChannel",
    "NotificationPolicy",
    "NotificationStatus",
    "Product",
    "ProductStatus",
    "UserProfile",
]


def _new_id() -> str:
    return uuid.uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NotificationChannel(str, enum.Enum):
    """Delivery channel of a notification."""

    EMAIL = "email"


class NotificationStatus(str, enum.Enum):
    """Outcome of a delivery attempt."""

    SENT = "sent"
    FAILED = "failed"


class NotificationPolicy(str, enum.Enum):
    """How the dispatcher decides which products are due."""

    REMINDER_DATE = "reminder_date"
    MILESTONES = "milestones"


class UserProfile(Base):  # pylint: disable=too-few-public-methods
    """Local mirror of a user from the identity provider."""

    __tablename__ = "user_profiles"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    display_name: Mapped[str | None] = mapped_column(
        String(100), nullable=True
    )
    email_notifications_enabled: Mapped[bool] = mapped_column(default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),  # pylint: disable=not-callable
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),  # pylint: disable=not-callable
        onupdate=func.now(),  # pylint: disable=not-callable
    )


class Product(Base):  # pylint: disable=too-few-public-methods
    """Product with an expiry date, owned by the user who logged it."""

    __tablename__ = "products"

    id: Mapped[str] = mapped_column(
        String(32), primary_key=True, default=_new_id
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    expiry_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    reminder_date: Mapped[date] = mapped_column(
        Date, nullable=False, index=True
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    category: Mapped[str | None] = mapped_column(String(50), nullable=True)
    photo_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Cached, recomputable from expiry_date
    status: Mapped[ProductStatus] = mapped_column(
        Enum(ProductStatus), nullable=False, default=ProductStatus.SAFE
    )

    owner_id: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    __table_args__ = (
        Index(
            "ix_products_owner_name_expiry", "owner_id", "name", "expiry_date"
        ),
    )

    def get_status(
        self, on_day: date, threshold_days: int | None = None
    ) -> ProductStatus:
        """Recompute the status of the product on a given day.

        Args:
            on_day (date): The evaluation day.
            threshold_days (int | None): Optional threshold override.

        Returns:
            ProductStatus: The status on ``on_day``.
        """
        return classify_status(self.expiry_date, on_day, threshold_days)


class DispatchRun(Base):  # pylint: disable=too-few-public-methods
    """Progress of the notification dispatch for one calendar day."""

    __tablename__ = "dispatch_runs"

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    run_date: Mapped[date] = mapped_column(Date, nullable=False, unique=True)
    policy: Mapped[NotificationPolicy] = mapped_column(
        Enum(NotificationPolicy), nullable=False
    )
    product_ids: Mapped[t.List[str]] = mapped_column(
        JSON, nullable=False, default=list
    )
    cursor: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    batches_sent: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    next_eligible_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),  # pylint: disable=not-callable
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),  # pylint: disable=not-callable
        onupdate=func.now(),  # pylint: disable=not-callable
    )

    @property
    def remaining(self) -> int:
        """Number of selected products not yet sent."""
        return max(len(self.product_ids) - self.cursor, 0)


class Notification(Base):  # pylint: disable=too-few-public-methods
    """Audit record of a single delivery attempt."""

    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    channel: Mapped[NotificationChannel] = mapped_column(
        Enum(NotificationChannel),
        nullable=False,
        default=NotificationChannel.EMAIL,
    )
    status: Mapped[NotificationStatus] = mapped_column(
        Enum(NotificationStatus), nullable=False
    )
    products_count: Mapped[int] = mapped_column(Integer, nullable=False)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    sent_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    dispatch_run_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("dispatch_runs.id", ondelete="SET NULL"),
        nullable=True,
    )
    batch_index: Mapped[int | None] = mapped_column(Integer, nullable=True)

    __table_args__ = (
        Index("ix_notifications_status_sent_at", "status", "sent_at"),
        Index("ix_notifications_user_id", "user_id"),
    )
