"""Schemas package."""

from expiro.schemas.auth import Identity, TokenData
from expiro.schemas.notifications import (
    DeliveryLog,
    DispatchOutcome,
    DispatchReport,
    NotificationListResponse,
    NotificationResponse,
    ProfileResponse,
    ProfileUpdate,
)
from expiro.schemas.product import (
    ProductCreate,
    ProductCreateResponse,
    ProductListResponse,
    ProductResponse,
    ProductStats,
)

__all__ = [
    "DeliveryLog",
    "DispatchOutcome",
    "DispatchReport",
    "Identity",
    "NotificationListResponse",
    "NotificationResponse",
    "ProductCreate",
    "ProductCreateResponse",
    "ProductListResponse",
    "ProductResponse",
    "ProductStats",
    "ProfileResponse",
    "ProfileUpdate",
    "TokenData",
]
