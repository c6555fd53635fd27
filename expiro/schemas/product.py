"""Pydantic schemas for request/response validation."""

import typing as t
from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field

from expiro.utils.expiry import ProductStatus


class ProductCreate(BaseModel):
    """Schema for creating a new product.

    Shape checks that need user-facing messages (blank names, unparseable
    dates) are left to the product service.
    """

    name: str = Field(..., max_length=255)
    expiry_date: str = Field(..., description="Expiry date, YYYY-MM-DD")
    quantity: int = Field(1, ge=1)
    category: str | None = Field(None, max_length=50)
    photo_url: str | None = Field(
        None, description="Reference to an uploaded photo (optional)"
    )


class ProductResponse(BaseModel):
    """Schema for product response."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    expiry_date: date
    reminder_date: date
    quantity: int
    category: str | None = None
    photo_url: str | None = None
    status: ProductStatus
    days_until_expiry: int
    owner_id: str
    created_at: datetime


class ProductCreateResponse(BaseModel):
    """Schema for the result of creating a product."""

    product: ProductResponse
    already_expired: bool = False
    warning: str | None = None


class ProductListResponse(BaseModel):
    """Schema for product list response."""

    items: t.List[ProductResponse]
    total: int


class ProductStats(BaseModel):
    """Schema for per-owner product statistics."""

    total_products: int
    total_quantity: int
    status_summary: t.Dict[str, int]
