"""Date utilities."""

from datetime import date, datetime, time, timezone
from zoneinfo import ZoneInfo

from expiro.core.config import SETTINGS


def reference_zone(tz_name: str | None = None) -> ZoneInfo:
    """Get the timezone that calendar days are evaluated in.

    Args:
        tz_name (str | None):
            Optional IANA timezone name. Defaults to the configured one.

    Returns:
        ZoneInfo: The reference timezone.
    """
    return ZoneInfo(tz_name or SETTINGS.reference_timezone)


def to_calendar_date(
    value: date | datetime, tz_name: str | None = None
) -> date:
    """Truncate a date or datetime to a calendar day.

    Naive datetimes are assumed to be UTC. Aware datetimes are converted to
    the reference timezone before the time of day is dropped.

    Args:
        value (date | datetime): The value to truncate.
        tz_name (str | None): Optional reference timezone name.

    Returns:
        date: The calendar day in the reference timezone.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(reference_zone(tz_name)).date()
    return value


def today(now: datetime | None = None, tz_name: str | None = None) -> date:
    """Get today's calendar date in the reference timezone.

    Args:
        now (datetime | None): Optional clock override.
        tz_name (str | None): Optional reference timezone name.

    Returns:
        date: Today's date.
    """
    return to_calendar_date(now or datetime.now(timezone.utc), tz_name)


def start_of_day_utc(day: date, tz_name: str | None = None) -> datetime:
    """Get the UTC instant at which a calendar day starts.

    Args:
        day (date): The calendar day.
        tz_name (str | None): Optional reference timezone name.

    Returns:
        datetime: Midnight of ``day`` in the reference timezone, in UTC.
    """
    local_midnight: datetime = datetime.combine(
        day, time.min, tzinfo=reference_zone(tz_name)
    )
    return local_midnight.astimezone(timezone.utc)


def calculate_days_until_expiration(expiry_date: date, on_day: date) -> int:
    """Calculate the number of days between a day and an expiry date.

    Args:
        expiry_date (date): The expiry date.
        on_day (date): The day to count from.

    Returns:
        int: Days until expiry, negative once expired.
    """
    return (expiry_date - on_day).days


def parse_expiry_date(value: date | datetime | str) -> date:
    """Parse user input into an expiry date.

    Args:
        value (date | datetime | str): A date, datetime or ISO date string.

    Returns:
        date: The parsed calendar date.
    """
    if isinstance(value, date):
        return to_calendar_date(value)
    text: str = value.strip()
    try:
        return date.fromisoformat(text)
    except ValueError:
        return to_calendar_date(datetime.fromisoformat(text))


def as_utc(value: datetime) -> datetime:
    """Get a timezone-aware UTC datetime.

    Naive datetimes, as read back from SQLite, are taken to be UTC already.

    Args:
        value (datetime): The datetime to normalize.

    Returns:
        datetime: The same instant in UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utcnow() -> datetime:
    """Get the current time in UTC."""
    return datetime.now(timezone.utc)
