"""Duplicate product detection."""

from datetime import date

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from expiro.core.models import Product


async def has_duplicate_product(
    db: AsyncSession, name: str, expiry_date: date, owner_id: str
) -> bool:
    """Check whether the owner already logged this product.

    The match is exact and case-sensitive on the trimmed name. Two concurrent
    creations can both pass this check; no unique constraint backs it.

    Args:
        db (AsyncSession): Database session.
        name (str): The trimmed product name.
        expiry_date (date): The expiry date.
        owner_id (str): The owner identity.

    Returns:
        bool: True if a matching product exists.
    """
    existing_id: str | None = (
        await db.execute(
            select(Product.id)
            .where(
                Product.name == name,
                Product.expiry_date == expiry_date,
                Product.owner_id == owner_id,
            )
            .limit(1)
        )
    ).scalar_one_or_none()
    return existing_id is not None
