"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from market_backend.app.api.v1.endpoints import (
    bookings, queue, payments, locks, zones, notifications, cron, audit, admin_dashboard
)

router = APIRouter()

# Tenant booking flow
router.include_router(bookings.router)
router.include_router(queue.router)
router.include_router(payments.router)

# Browsing and bookmarks
router.include_router(locks.router)
router.include_router(locks.wishlist_router)
router.include_router(zones.router)

# Staff
router.include_router(locks.admin_router)
router.include_router(payments.admin_router)
router.include_router(zones.admin_router)
router.include_router(admin_dashboard.router)
router.include_router(audit.router)

# In-app notifications
router.include_router(notifications.router)

# Scheduled sweeps
router.include_router(cron.router)
