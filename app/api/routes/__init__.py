"""
API Routes
"""
from fastapi import APIRouter

from app.api.routes.customers import router as customers_router
from app.api.webhooks.stripe import router as stripe_router

router = APIRouter()

router.include_router(customers_router, prefix="/customers", tags=["customers"])
# Canonical webhook endpoint (documented)
router.include_router(stripe_router, prefix="/stripe", tags=["webhooks"])

# Backwards-compatible webhook endpoint: POST /api/webhook
router.include_router(stripe_router, tags=["webhooks"], include_in_schema=False)
