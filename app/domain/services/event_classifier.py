"""
Event classifier - maps a verified Stripe envelope onto the closed set of
ClassifiedEvent variants.

Extraction never raises on missing optional fields: absent ids, e-mails and
prices flow through as None. The network lookups used to enrich a checkout
(customer by e-mail, subscription, line items) degrade to None on failure.
"""
from typing import Any, Optional

from app.core.exceptions import ExternalServiceException
from app.core.logging import get_logger
from app.core.validation import EmailValidator, provider_ref
from app.domain.events import (
    CheckoutCompleted,
    ClassifiedEvent,
    InvoicePaymentFailed,
    ProviderEvent,
    StripeEventType,
    SubscriptionDeleted,
    SubscriptionUpdated,
    Unhandled,
)
from app.domain.services.stripe_provider import (
    StripeProvider,
    subscription_amount,
    subscription_price_id,
)

logger = get_logger(__name__)


def _str_or_none(value: Any) -> Optional[str]:
    return value if isinstance(value, str) and value else None


def _int_or_none(value: Any) -> Optional[int]:
    return value if isinstance(value, int) and not isinstance(value, bool) else None


def _metadata(obj: dict[str, Any]) -> dict[str, str]:
    raw = obj.get("metadata")
    if not isinstance(raw, dict):
        return {}
    return {str(k): str(v) for k, v in raw.items() if v is not None}


def _invoice_subscription_id(invoice: dict[str, Any]) -> Optional[str]:
    """Top-level ``subscription`` on older API versions, ``parent.subscription_details`` on newer ones."""
    legacy = provider_ref(invoice.get("subscription"))
    if legacy:
        return legacy
    parent = invoice.get("parent")
    details = parent.get("subscription_details") if isinstance(parent, dict) else None
    if isinstance(details, dict):
        return provider_ref(details.get("subscription"))
    return None


class EventClassifier:
    def __init__(self, provider: StripeProvider) -> None:
        self._provider = provider

    async def classify(self, event: ProviderEvent) -> ClassifiedEvent:
        obj = event.data_object

        if event.type == StripeEventType.CHECKOUT_SESSION_COMPLETED.value:
            return await self._checkout_completed(event, obj)

        if event.type in (
            StripeEventType.SUBSCRIPTION_CREATED.value,
            StripeEventType.SUBSCRIPTION_UPDATED.value,
        ):
            fields = await self._subscription_fields(obj)
            return SubscriptionUpdated(event_id=event.id, event_type=event.type, **fields)

        if event.type == StripeEventType.SUBSCRIPTION_DELETED.value:
            fields = await self._subscription_fields(obj)
            return SubscriptionDeleted(event_id=event.id, event_type=event.type, **fields)

        if event.type == StripeEventType.INVOICE_PAYMENT_FAILED.value:
            return InvoicePaymentFailed(
                event_id=event.id,
                event_type=event.type,
                invoice_id=_str_or_none(obj.get("id")),
                customer_id=provider_ref(obj.get("customer")),
                email=EmailValidator.normalize(obj.get("customer_email")),
                subscription_id=_invoice_subscription_id(obj),
                amount_due=_int_or_none(obj.get("amount_due")),
                currency=_str_or_none(obj.get("currency")),
            )

        logger.info("Unhandled event type", extra_data={"event_type": event.type})
        return Unhandled(event_id=event.id, event_type=event.type)

    async def _checkout_completed(
        self, event: ProviderEvent, session: dict[str, Any]
    ) -> CheckoutCompleted:
        session_id = _str_or_none(session.get("id"))
        details = session.get("customer_details")
        # Stripe matches customers by the address exactly as entered
        raw_email = EmailValidator.clean(
            session.get("customer_email")
            or (details.get("email") if isinstance(details, dict) else None)
        )
        email = EmailValidator.normalize(raw_email)

        customer_id = provider_ref(session.get("customer"))
        if customer_id is None and raw_email:
            customer_id = await self._lookup_customer(raw_email)

        metadata = _metadata(session)
        subscription_id = provider_ref(session.get("subscription"))
        subscription_status: Optional[str] = None
        price_id: Optional[str] = None

        if subscription_id:
            subscription = await self._lookup_subscription(subscription_id)
            if subscription is not None:
                subscription_status = _str_or_none(subscription.get("status"))
                price_id = subscription_price_id(subscription)
                # Session metadata wins; subscription metadata fills gaps
                metadata = {**_metadata(subscription), **metadata}
        elif session_id:
            price_id = await self._lookup_line_item_price(session_id)

        return CheckoutCompleted(
            event_id=event.id,
            event_type=event.type,
            session_id=session_id,
            customer_id=customer_id,
            email=email,
            mode=_str_or_none(session.get("mode")),
            payment_status=_str_or_none(session.get("payment_status")),
            subscription_id=subscription_id,
            subscription_status=subscription_status,
            price_id=price_id,
            amount_total=_int_or_none(session.get("amount_total")),
            currency=_str_or_none(session.get("currency")),
            metadata=metadata,
        )

    async def _subscription_fields(self, subscription: dict[str, Any]) -> dict[str, Any]:
        subscription_id = _str_or_none(subscription.get("id"))
        price_id = subscription_price_id(subscription)
        if price_id is None and subscription_id:
            # Payload without expanded items, follow the reference
            fetched = await self._lookup_subscription(subscription_id)
            if fetched is not None:
                price_id = subscription_price_id(fetched)
        amount, currency = subscription_amount(subscription)
        return {
            "customer_id": provider_ref(subscription.get("customer")),
            "subscription_id": subscription_id,
            "status": _str_or_none(subscription.get("status")),
            "price_id": price_id,
            "amount": amount,
            "currency": _str_or_none(currency),
            "metadata": _metadata(subscription),
        }

    async def _lookup_customer(self, email: str) -> Optional[str]:
        try:
            return await self._provider.find_customer_id_by_email(email)
        except ExternalServiceException as e:
            logger.warning(
                "Customer lookup by email failed, continuing without customer id",
                extra_data={"email": EmailValidator.mask(email), "error": e.message},
            )
            return None

    async def _lookup_subscription(self, subscription_id: str) -> Optional[dict[str, Any]]:
        try:
            return await self._provider.retrieve_subscription(subscription_id)
        except ExternalServiceException as e:
            logger.warning(
                "Subscription lookup failed, continuing without price/status",
                extra_data={"subscription_id": subscription_id, "error": e.message},
            )
            return None

    async def _lookup_line_item_price(self, session_id: str) -> Optional[str]:
        try:
            return await self._provider.first_line_item_price_id(session_id)
        except ExternalServiceException as e:
            logger.warning(
                "Line item lookup failed, continuing without price",
                extra_data={"session_id": session_id, "error": e.message},
            )
            return None
