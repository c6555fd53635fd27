"""Expiry status, reminder date and urgency bucket rules.

Everything in this module is pure: the result only depends on the arguments,
so the persisted status of a product can always be recomputed from its expiry
date.
"""

import enum
import typing as t
from dataclasses import dataclass
from datetime import date
from datetime import timedelta as td

from expiro.core.config import SETTINGS
from expiro.utils.dates import calculate_days_until_expiration


class ProductStatus(str, enum.Enum):
    """Expiry status of a product."""

    SAFE = "safe"
    EXPIRING_SOON = "expiring_soon"
    EXPIRED = "expired"


@dataclass(frozen=True)
class UrgencyBucket:
    """A named group of products sharing an urgency level."""

    key: str
    label: str
    advice: str
    upper_days: int | None  # None for the expired bucket


def classify_status(
    expiry_date: date,
    on_day: date,
    threshold_days: int | None = None,
) -> ProductStatus:
    """Classify a product by how far away its expiry date is.

    Args:
        expiry_date (date): The expiry date.
        on_day (date): The evaluation day.
        threshold_days (int | None):
            Days before expiry at which a product becomes expiring soon.
            Defaults to the configured threshold.

    Returns:
        ProductStatus: The product status on ``on_day``.
    """
    threshold: int = (
        SETTINGS.expiry_threshold_days
        if threshold_days is None
        else threshold_days
    )
    match calculate_days_until_expiration(expiry_date, on_day):
        case d if d < 0:
            return ProductStatus.EXPIRED
        case d if d <= threshold:
            return ProductStatus.EXPIRING_SOON
        case _:
            return ProductStatus.SAFE


def compute_reminder_date(
    expiry_date: date,
    on_day: date,
    threshold_days: int | None = None,
) -> date:
    """Compute the day on which the first reminder should fire.

    Args:
        expiry_date (date): The expiry date.
        on_day (date): The evaluation day (usually the creation day).
        threshold_days (int | None):
            Days before expiry to remind. Defaults to the configured threshold.

    Returns:
        date:
            ``expiry_date - threshold`` when that is still ahead,
            otherwise ``on_day``.
    """
    threshold: int = (
        SETTINGS.expiry_threshold_days
        if threshold_days is None
        else threshold_days
    )
    if calculate_days_until_expiration(expiry_date, on_day) > threshold:
        return expiry_date - td(days=threshold)
    return on_day


def _advice_for(days: int) -> str:
    if days <= 0:
        return "Remove immediately from shelves"
    if days <= 7:
        return "Apply discounts and promote heavily"
    if days <= 30:
        return "Start planning promotions"
    if days <= 60:
        return "Monitor inventory levels"
    return "Plan ahead for stock rotation"


def build_buckets(
    milestones: t.Sequence[int] | None = None,
    threshold_days: int | None = None,
) -> t.List[UrgencyBucket]:
    """Build the urgency buckets, most urgent first.

    Bucket edges are the milestone days plus the status threshold, so the
    least urgent bucket ends exactly where products stop being expiring soon.

    Args:
        milestones (t.Sequence[int] | None):
            Milestone days. Defaults to the configured milestones.
        threshold_days (int | None):
            The status threshold. Defaults to the configured threshold.

    Returns:
        t.List[UrgencyBucket]: The buckets ordered by urgency.
    """
    threshold: int = (
        SETTINGS.expiry_threshold_days
        if threshold_days is None
        else threshold_days
    )
    edges: t.List[int] = sorted(
        set(SETTINGS.reminder_milestones if milestones is None else milestones)
        | {threshold}
    )
    buckets: t.List[UrgencyBucket] = [
        UrgencyBucket(
            key="expired",
            label="Expired",
            advice=_advice_for(0),
            upper_days=None,
        )
    ]
    for edge in edges:
        if edge == 0:
            buckets.append(
                UrgencyBucket(
                    key="due_today",
                    label="Expires today",
                    advice=_advice_for(0),
                    upper_days=0,
                )
            )
        else:
            buckets.append(
                UrgencyBucket(
                    key=f"due_in_{edge}",
                    label=f"{edge} days until expiry",
                    advice=_advice_for(edge),
                    upper_days=edge,
                )
            )
    return buckets


def bucket_for(
    expiry_date: date,
    on_day: date,
    buckets: t.Sequence[UrgencyBucket],
) -> UrgencyBucket | None:
    """Find the bucket a product belongs to.

    Args:
        expiry_date (date): The expiry date.
        on_day (date): The evaluation day.
        buckets (t.Sequence[UrgencyBucket]): Buckets from ``build_buckets``.

    Returns:
        UrgencyBucket | None:
            The most urgent matching bucket, or None when the product is
            further away than every bucket edge.
    """
    days: int = calculate_days_until_expiration(expiry_date, on_day)
    for bucket in buckets:
        if bucket.upper_days is None:
            if days < 0:
                return bucket
        elif days <= bucket.upper_days:
            return bucket
    return None
