"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from parcel_delivery.app.api.v1.endpoints import auth, parcels, payments, admin

router = APIRouter()

# Identity endpoints
router.include_router(auth.router)

# Parcel management and tracking
router.include_router(parcels.router)

# Payments (ledger + payment intents)
router.include_router(payments.router)

# Admin reconciliation
router.include_router(admin.router)
