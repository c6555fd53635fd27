"""Application configuration settings."""

import secrets
import typing as t

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    app_name: str = "Expiro"
    app_version: str = "1.0.0"
    app_url: str = "http://localhost:8000"
    debug: bool = False

    # Database
    database_url: str = "sqlite+aiosqlite:///./expiro.db"

    # Identity provider (tokens are issued externally, only verified here)
    jwt_secret: str = secrets.token_urlsafe(32)
    jwt_algorithm: str = "HS256"
    jwt_audience: str | None = None

    # Expiry policy
    expiry_threshold_days: int = 90
    reference_timezone: str = "UTC"
    reminder_milestones: t.List[int] = [90, 60, 30, 7, 0]
    notification_policy: t.Literal["reminder_date", "milestones"] = (
        "reminder_date"
    )

    # Dispatcher
    daily_email_cap: int = 95
    notification_batch_size: int = 30
    notification_batch_delay_minutes: int = 60
    dispatch_interval_minutes: int = 60

    # CORS
    cors_origins: t.List[str] = ["*"]

    # Email notifications
    smtp_enabled: bool = False
    smtp_host: str = "localhost"
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_from_email: str = "expiro@localhost"
    smtp_from_name: str = "Expiro"

    @field_validator("reminder_milestones")
    @classmethod
    def validate_milestones(cls, v: t.List[int]) -> t.List[int]:
        """Deduplicate milestones and sort them in descending order.

        Args:
            v (t.List[int]): The configured milestone days.

        Returns:
            t.List[int]: The normalized milestone days.
        """
        if not v:
            raise ValueError("At least one reminder milestone is required")
        if any(day < 0 for day in v):
            raise ValueError("Reminder milestones cannot be negative")
        return sorted(set(v), reverse=True)

    @model_validator(mode="after")
    def validate_dispatch_limits(self) -> "Settings":
        """Check cross-field constraints of the expiry and dispatch policy.

        Returns:
            Settings: The validated settings.
        """
        if self.expiry_threshold_days < 0:
            raise ValueError("expiry_threshold_days cannot be negative")
        if max(self.reminder_milestones) > self.expiry_threshold_days:
            raise ValueError(
                "Reminder milestones cannot exceed expiry_threshold_days"
            )
        if self.notification_batch_size < 1:
            raise ValueError("notification_batch_size must be at least 1")
        if self.daily_email_cap < 0:
            raise ValueError("daily_email_cap cannot be negative")
        if self.notification_batch_delay_minutes < 0:
            raise ValueError(
                "notification_batch_delay_minutes cannot be negative"
            )
        return self


SETTINGS = Settings()
