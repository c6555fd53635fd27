"""Product endpoints (owner-scoped)."""

import typing as t

from fastapi import APIRouter, Depends, Query, status

from expiro.core.auth import get_session_client
from expiro.core.errors import ExpiroError
from expiro.core.models import ProductStatus
from expiro.core.session import SessionClient
from expiro.routers.api.errors import to_http_exception
from expiro.schemas.product import (
    ProductCreate,
    ProductCreateResponse,
    ProductListResponse,
    ProductStats,
)
from expiro.services import ProductService

ROUTER = APIRouter(prefix="/products", tags=["Products"])


@ROUTER.get("", response_model=ProductListResponse)
async def list_products(
    client: t.Annotated[SessionClient, Depends(get_session_client)],
    product_status: ProductStatus | None = Query(
        None, alias="status", description="Filter by expiry status"
    ),
    search: str | None = Query(
        None, description="Filter by name (partial match)"
    ),
) -> ProductListResponse:
    """List the caller's products, soonest expiry first.

    Args:
        client (SessionClient): The session client of the caller.
        product_status (ProductStatus | None): Filter by expiry status.
        search (str | None): Filter by name (partial match).

    Returns:
        ProductListResponse: The caller's products.
    """
    try:
        return await ProductService(client).list_products(
            status=product_status, search=search
        )
    except ExpiroError as exc:
        raise to_http_exception(exc) from exc


@ROUTER.get("/stats", response_model=ProductStats)
async def get_statistics(
    client: t.Annotated[SessionClient, Depends(get_session_client)],
) -> ProductStats:
    """Get product counts per status for the caller.

    Args:
        client (SessionClient): The session client of the caller.

    Returns:
        ProductStats: The product statistics.
    """
    try:
        return await ProductService(client).get_statistics()
    except ExpiroError as exc:
        raise to_http_exception(exc) from exc


@ROUTER.post(
    "",
    response_model=ProductCreateResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_product(
    product_data: ProductCreate,
    client: t.Annotated[SessionClient, Depends(get_session_client)],
) -> ProductCreateResponse:
    """Log a new product.

    Args:
        product_data (ProductCreate): The product data.
        client (SessionClient): The session client of the caller.

    Returns:
        ProductCreateResponse:
            The created product and a warning if it already expired.
    """
    try:
        response: ProductCreateResponse = await ProductService(
            client
        ).create_product(
            name=product_data.name,
            expiry_date=product_data.expiry_date,
            quantity=product_data.quantity,
            category=product_data.category,
            photo_url=product_data.photo_url,
        )
        await client.commit("create product")
    except ExpiroError as exc:
        raise to_http_exception(exc) from exc

    return response


@ROUTER.delete("/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_product(
    product_id: str,
    client: t.Annotated[SessionClient, Depends(get_session_client)],
) -> None:
    """Delete a product. Deleting an unknown product is not an error.

    Args:
        product_id (str): The ID of the product.
        client (SessionClient): The session client of the caller.
    """
    try:
        await ProductService(client).delete_product(product_id)
        await client.commit("delete product")
    except ExpiroError as exc:
        raise to_http_exception(exc) from exc
