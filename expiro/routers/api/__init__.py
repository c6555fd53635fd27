"""API routes package."""

from fastapi import APIRouter

from expiro.routers.api import notifications, products, profile

# Create main API router with /api prefix
ROUTER = APIRouter(prefix="/api")

# Include all sub-routers
ROUTER.include_router(products.ROUTER)
ROUTER.include_router(profile.ROUTER)
ROUTER.include_router(notifications.ROUTER)

__all__ = [
    "notifications",
    "products",
    "profile",
    "ROUTER",
]
