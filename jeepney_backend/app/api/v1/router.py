"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from jeepney_backend.app.api.v1.endpoints import (
    fares, trips, checkpoint_scans, earnings, notifications
)

router = APIRouter()

# Fare matrix
router.include_router(fares.router)

# Booking and trip state changes
router.include_router(trips.router)

# Scans, conflicts, driver locations
router.include_router(checkpoint_scans.router)

# Ledger and shifts
router.include_router(earnings.router)
router.include_router(earnings.shift_router)

# Trip event outbox
router.include_router(notifications.router)
