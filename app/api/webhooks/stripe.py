"""
Stripe Webhook Handler - payment event ingestion
"""
from fastapi import APIRouter, Depends, Request

from app.api.dependencies.pipeline import get_event_router
from app.domain.services.event_router import EventRouter

router = APIRouter()


@router.post(
    "/webhook",
    summary="Stripe Webhook",
    description="Receive signed Stripe events and reconcile customer access.",
    responses={
        200: {"description": "Event processed, duplicate, or unhandled type"},
        400: {"description": "Missing/invalid Stripe-Signature or malformed event"},
        500: {"description": "Server misconfigured or a strict step failed; Stripe will redeliver"},
    },
    tags=["Webhooks"],
)
async def stripe_webhook(
    request: Request,
    event_router: EventRouter = Depends(get_event_router),
) -> dict:
    """
    1. Verify Stripe-Signature against the raw body
    2. Claim the event id (idempotency gate)
    3. Classify the event and run the reconciliation pipeline
    4. Mark the event done

    Failures are raised as AppException subclasses and rendered by the
    global exception handler.
    """
    # The signature covers the exact bytes; never parse before verifying
    body = await request.body()
    signature = request.headers.get("Stripe-Signature")

    outcome = await event_router.handle(body, signature)
    return outcome.to_response()
