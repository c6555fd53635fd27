"""Error taxonomy shared by the services and the API layer."""

from datetime import date


class ExpiroError(Exception):
    """Base class for all Expiro errors."""


class ProductValidationError(ExpiroError):
    """Raised when product input has the wrong shape."""

    field: str

    def __init__(self, field: str, message: str) -> None:
        """Initialize ProductValidationError.

        Args:
            field (str): The offending input field.
            message (str): A message the user can act on.
        """
        self.field = field
        super().__init__(message)


class DuplicateProductError(ExpiroError):
    """Raised when the owner already has the same product and expiry date."""

    name: str
    expiry_date: date

    def __init__(self, name: str, expiry_date: date) -> None:
        """Initialize DuplicateProductError.

        Args:
            name (str): The conflicting product name.
            expiry_date (date): The conflicting expiry date.
        """
        self.name = name
        self.expiry_date = expiry_date
        super().__init__(
            f'Duplicate product: "{name}" expiring on '
            f"{expiry_date.isoformat()} already exists. "
            "Please update the quantity instead of adding a new entry."
        )


class UnauthenticatedError(ExpiroError):
    """Raised when there is no valid caller identity."""

    def __init__(self, message: str = "Not authenticated") -> None:
        super().__init__(message)


class UnavailableError(ExpiroError):
    """Raised when the persistence layer cannot be reached."""

    def __init__(self, message: str = "Storage is unavailable") -> None:
        super().__init__(message)


class RateLimitedError(ExpiroError):
    """Raised when the daily email cap has been reached."""

    sent_today: int
    daily_cap: int

    def __init__(self, sent_today: int, daily_cap: int) -> None:
        """Initialize RateLimitedError.

        Args:
            sent_today (int): Emails already sent today.
            daily_cap (int): The configured daily cap.
        """
        self.sent_today = sent_today
        self.daily_cap = daily_cap
        super().__init__(
            f"Daily email limit reached ({sent_today}/{daily_cap})"
        )
