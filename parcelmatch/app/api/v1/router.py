"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from parcelmatch.app.api.v1.endpoints import (
    parcels, trips, matching, notifications, admin_ops
)

router = APIRouter()

# Sender parcels and courier trips
router.include_router(parcels.router)
router.include_router(trips.router)

# Matches: listing, accept/reject, score preview
router.include_router(matching.router)

# In-app notifications
router.include_router(notifications.router)

# Dead letter queue operations
router.include_router(admin_ops.router)
