"""
Order ledger persister - forwards a normalized transaction snapshot to the
Fulfillment Service.

The caller decides whether a failure matters: the access-granting checkout
treats it as strict, every other event as best-effort.
"""
from datetime import datetime, timezone
from typing import Optional

from app.core.exceptions import AppException
from app.core.logging import get_logger
from app.core.validation import EmailValidator
from app.domain.events import (
    AccessState,
    CheckoutCompleted,
    ClassifiedEvent,
    InvoicePaymentFailed,
    PlanInfo,
    SubscriptionDeleted,
    SubscriptionUpdated,
)
from app.domain.records import OrderSnapshot
from app.domain.services.fulfillment_client import FulfillmentClient
from app.state_machine.pipeline import StepResult

logger = get_logger(__name__)

STEP_NAME = "order_ledger"


def build_snapshot(
    event: ClassifiedEvent,
    plan: PlanInfo,
    access: AccessState,
    email: Optional[str] = None,
) -> Optional[OrderSnapshot]:
    """Snapshot for one classified event; None for event kinds with no ledger entry."""
    amount: Optional[int] = None
    currency: Optional[str] = None
    status: Optional[str] = None
    price_id: Optional[str] = None
    customer_id: Optional[str] = None

    if isinstance(event, CheckoutCompleted):
        amount, currency = event.amount_total, event.currency
        status = event.subscription_status or event.payment_status
        price_id, customer_id = event.price_id, event.customer_id
        email = event.email or email
    elif isinstance(event, (SubscriptionUpdated, SubscriptionDeleted)):
        amount, currency = event.amount, event.currency
        status, price_id, customer_id = event.status, event.price_id, event.customer_id
    elif isinstance(event, InvoicePaymentFailed):
        amount, currency = event.amount_due, event.currency
        status, customer_id = "payment_failed", event.customer_id
        email = event.email or email
    else:
        return None

    return OrderSnapshot(
        event_id=event.event_id,
        event_type=event.event_type,
        customer_id=customer_id,
        email=email,
        amount=amount,
        currency=currency,
        status=status,
        access=access,
        price_id=price_id,
        tier=plan.tier,
        plan_key=plan.plan_key,
        plan_name=plan.plan_name,
        timestamp=datetime.now(timezone.utc).isoformat(),
    )


class OrderLedgerPersister:
    def __init__(self, client: FulfillmentClient) -> None:
        self._client = client

    async def upsert(self, snapshot: OrderSnapshot) -> StepResult:
        try:
            ack = await self._client.upsert_order(snapshot)
        except AppException as e:
            logger.warning(
                "Order ledger upsert failed",
                extra_data={
                    "event_id": snapshot.event_id,
                    "customer_id": snapshot.customer_id,
                    "email": EmailValidator.mask(snapshot.email),
                    "error_code": e.error_code.value,
                    "error": e.message,
                },
            )
            return StepResult.failed(STEP_NAME, e.message)

        return StepResult.succeeded(STEP_NAME, ack=ack)
