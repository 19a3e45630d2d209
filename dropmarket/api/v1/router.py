from fastapi import APIRouter

from dropmarket.api.v1.endpoints import (
    # Catalog
    catalog,
    # Demand and drops
    interests,
    drops,
    bookings,
    # Fulfillment
    orders,
    notifications,
)


# Create main API router
api_router = APIRouter(prefix="/api/v1")

# ==================== Catalog ====================
api_router.include_router(
    catalog.router,
    prefix="/catalog",
    tags=["Catalog"]
)

# ==================== Interests & Drops ====================
api_router.include_router(
    interests.router,
    prefix="/interests",
    tags=["Interests"]
)
api_router.include_router(
    drops.router,
    prefix="/drops",
    tags=["Drops"]
)
api_router.include_router(
    bookings.router,
    prefix="/bookings",
    tags=["Bookings"]
)

# ==================== Fulfillment ====================
api_router.include_router(
    orders.router,
    prefix="/orders",
    tags=["Orders"]
)
api_router.include_router(
    notifications.router,
    prefix="/notifications",
    tags=["Notifications"]
)
