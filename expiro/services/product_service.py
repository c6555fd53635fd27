"""Product service - business logic for product operations."""

import logging
import typing as t
from datetime import date, datetime
from datetime import timedelta as td

from sqlalchemy import Select, and_, delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from expiro.core.config import SETTINGS
from expiro.core.database import translate_db_errors
from expiro.core.errors import DuplicateProductError, ProductValidationError
from expiro.core.models import Product, ProductStatus
from expiro.core.session import SessionClient
from expiro.schemas.auth import Identity
from expiro.schemas.product import (
    ProductCreateResponse,
    ProductListResponse,
    ProductResponse,
    ProductStats,
)
from expiro.services.user_directory import UserDirectory
from expiro.utils.dates import (
    as_utc,
    calculate_days_until_expiration,
    parse_expiry_date,
    today,
    utcnow,
)
from expiro.utils.duplicates import has_duplicate_product
from expiro.utils.expiry import classify_status, compute_reminder_date

LOGGER: logging.Logger = logging.getLogger(__name__)


class ProductService:
    """Service class for product operations."""

    client: SessionClient
    threshold_days: int

    def __init__(
        self,
        client: SessionClient,
        threshold_days: int | None = None,
        clock: t.Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize ProductService.

        Args:
            client (SessionClient):
                The session client bound to the caller.
            threshold_days (int | None):
                Expiring-soon threshold. Defaults to the configured one.
            clock (t.Callable[[], datetime] | None):
                Source of the current time. Defaults to UTC now.
        """
        self.client = client
        self.threshold_days = (
            SETTINGS.expiry_threshold_days
            if threshold_days is None
            else threshold_days
        )
        self.clock = clock or utcnow

    @property
    def db(self) -> AsyncSession:
        """The database session of the session client."""
        return self.client.db

    def today(self) -> date:
        """Get today's date in the reference timezone."""
        return today(self.clock())

    def convert_product_to_response(
        self, product: Product, on_day: date
    ) -> ProductResponse:
        """Convert Product model to ProductResponse schema.

        The status is recomputed rather than read from the cached column.

        Args:
            product (Product): The product model.
            on_day (date): The evaluation day.

        Returns:
            ProductResponse: The product response schema.
        """
        return ProductResponse(
            id=product.id,
            name=product.name,
            expiry_date=product.expiry_date,
            reminder_date=product.reminder_date,
            quantity=product.quantity,
            category=product.category,
            photo_url=product.photo_url,
            status=product.get_status(on_day, self.threshold_days),
            days_until_expiry=calculate_days_until_expiration(
                product.expiry_date, on_day
            ),
            owner_id=product.owner_id,
            created_at=product.created_at,
        )

    async def create_product(  # pylint: disable=too-many-arguments,too-many-positional-arguments,line-too-long  # noqa: E501
        self,
        name: str,
        expiry_date: date | datetime | str,
        quantity: int | None = 1,
        category: str | None = None,
        photo_url: str | None = None,
    ) -> ProductCreateResponse:
        """Create a new product for the caller.

        Args:
            name (str): The product name.
            expiry_date (date | datetime | str): The expiry date.
            quantity (int | None): The quantity, defaults to 1.
            category (str | None): An optional category label.
            photo_url (str | None): An optional photo reference.

        Returns:
            ProductCreateResponse:
                The created product, with a warning when it is already
                expired.
        """
        clean_name: str = name.strip() if isinstance(name, str) else ""
        if not clean_name:
            raise ProductValidationError("name", "Product name is required")

        try:
            expiry: date = parse_expiry_date(expiry_date)
        except (ValueError, TypeError, AttributeError) as exc:
            raise ProductValidationError(
                "expiry_date", "Invalid expiry date"
            ) from exc

        if quantity is None:
            quantity = 1
        if quantity < 1:
            raise ProductValidationError(
                "quantity", "Quantity must be at least 1"
            )

        clean_category: str | None = (
            (category.strip() or None) if category is not None else None
        )

        identity: Identity = self.client.require_user()
        on_day: date = self.today()

        with translate_db_errors("create product"):
            if await has_duplicate_product(
                self.db, clean_name, expiry, identity.user_id
            ):
                LOGGER.info(
                    "Rejected duplicate product '%s' (%s) for user %s",
                    clean_name,
                    expiry,
                    identity.user_id,
                )
                raise DuplicateProductError(clean_name, expiry)

            await UserDirectory(self.db).ensure_profile(identity)

            product: Product = Product(
                name=clean_name,
                expiry_date=expiry,
                reminder_date=compute_reminder_date(
                    expiry, on_day, self.threshold_days
                ),
                quantity=quantity,
                category=clean_category,
                photo_url=photo_url or None,
                status=classify_status(expiry, on_day, self.threshold_days),
                owner_id=identity.user_id,
                created_at=as_utc(self.clock()),
            )
            self.db.add(product)
            await self.db.flush()
            await self.db.refresh(product)

        LOGGER.info(
            "Created product %s '%s' expiring %s (reminder %s)",
            product.id,
            product.name,
            product.expiry_date,
            product.reminder_date,
        )

        warning: str | None = None
        days: int = calculate_days_until_expiration(expiry, on_day)
        if days < 0:
            warning = (
                f"Warning: This product already expired {abs(days)} day(s) "
                "ago. An immediate alert will be sent."
            )

        return ProductCreateResponse(
            product=self.convert_product_to_response(product, on_day),
            already_expired=days < 0,
            warning=warning,
        )

    async def list_products(
        self,
        status: ProductStatus | None = None,
        search: str | None = None,
    ) -> ProductListResponse:
        """List the caller's products, soonest expiry first.

        Args:
            status (ProductStatus | None):
                Optional filter on the recomputed status.
            search (str | None):
                Optional case-insensitive name filter.

        Returns:
            ProductListResponse: The caller's products.
        """
        identity: Identity = self.client.require_user()
        on_day: date = self.today()

        query: Select[t.Tuple[Product]] = select(Product).where(
            Product.owner_id == identity.user_id
        )
        if search is not None and search.strip():
            query = query.where(Product.name.ilike(f"%{search.strip()}%"))
        query = query.order_by(
            Product.expiry_date.asc(), Product.created_at.asc()
        )

        with translate_db_errors("list products"):
            products: t.Sequence[Product] = (
                (await self.db.execute(query)).scalars().all()
            )

        items: t.List[ProductResponse] = [
            self.convert_product_to_response(product, on_day)
            for product in products
        ]
        if status is not None:
            items = [item for item in items if item.status == status]

        return ProductListResponse(items=items, total=len(items))

    async def delete_product(self, product_id: str) -> None:
        """Delete one of the caller's products.

        Deleting a product that does not exist, or that belongs to someone
        else, succeeds without doing anything.

        Args:
            product_id (str): The ID of the product to delete.
        """
        identity: Identity = self.client.require_user()

        with translate_db_errors("delete product"):
            result = await self.db.execute(
                delete(Product).where(
                    Product.id == product_id,
                    Product.owner_id == identity.user_id,
                )
            )

        if result.rowcount:
            LOGGER.info("Deleted product %s", product_id)
        else:
            LOGGER.debug("Product %s not found, nothing deleted", product_id)

    async def get_statistics(self) -> ProductStats:
        """Get product counts for the caller.

        Returns:
            ProductStats: Totals and counts per status.
        """
        identity: Identity = self.client.require_user()
        on_day: date = self.today()

        with translate_db_errors("load product statistics"):
            products: t.Sequence[Product] = (
                (
                    await self.db.execute(
                        select(Product).where(
                            Product.owner_id == identity.user_id
                        )
                    )
                )
                .scalars()
                .all()
            )

        status_summary: t.Dict[str, int] = {
            status.value: 0 for status in ProductStatus
        }
        for product in products:
            status_summary[
                product.get_status(on_day, self.threshold_days).value
            ] += 1

        return ProductStats(
            total_products=len(products),
            total_quantity=sum(product.quantity for product in products),
            status_summary=status_summary,
        )


async def refresh_product_statuses(
    db: AsyncSession,
    on_day: date,
    threshold_days: int | None = None,
) -> int:
    """Bring the cached status column in line with the expiry dates.

    Args:
        db (AsyncSession): The database session.
        on_day (date): The evaluation day.
        threshold_days (int | None): Optional threshold override.

    Returns:
        int: Number of products whose cached status changed.
    """
    threshold: int = (
        SETTINGS.expiry_threshold_days
        if threshold_days is None
        else threshold_days
    )
    horizon: date = on_day + td(days=threshold)
    ranges: t.Dict[ProductStatus, t.Any] = {
        ProductStatus.EXPIRED: Product.expiry_date < on_day,
        ProductStatus.EXPIRING_SOON: and_(
            Product.expiry_date >= on_day, Product.expiry_date <= horizon
        ),
        ProductStatus.SAFE: Product.expiry_date > horizon,
    }

    changed: int = 0
    with translate_db_errors("refresh product statuses"):
        for status, in_range in ranges.items():
            result = await db.execute(
                update(Product)
                .where(in_range, Product.status != status)
                .values(status=status)
            )
            changed += result.rowcount or 0

    if changed:
        LOGGER.info("Refreshed cached status of %d products", changed)
    return changed

