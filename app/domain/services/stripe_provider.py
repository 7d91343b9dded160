"""
Stripe lookups the classifier needs to enrich an event.

Calls go through the SDK's native async API on an httpx transport, so a
request is cancelled rather than abandoned when ``STRIPE_TIMEOUT_SECONDS``
runs out. Failures are raised as ProviderLookupError / ServiceTimeoutError;
degrading them is the caller's decision.
"""
import asyncio
from typing import Any, Awaitable, Callable, Optional, TypeVar

import stripe

from app.core.config import Settings
from app.core.exceptions import ProviderLookupError, ServiceTimeoutError
from app.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class StripeProvider:
    def __init__(self, settings: Settings, client: Optional[stripe.StripeClient] = None) -> None:
        self._api_key = settings.STRIPE_SECRET_KEY
        self._timeout = settings.STRIPE_TIMEOUT_SECONDS
        self._http_client: Optional[stripe.HTTPXClient] = None
        self._stripe_client = client

    @property
    def _client(self) -> stripe.StripeClient:
        # StripeClient rejects an empty key, so it is built on first lookup
        if self._stripe_client is None:
            self._http_client = stripe.HTTPXClient(timeout=self._timeout)
            self._stripe_client = stripe.StripeClient(
                self._api_key,
                http_client=self._http_client,
                max_network_retries=0,
            )
        return self._stripe_client

    async def aclose(self) -> None:
        if self._http_client is not None:
            await self._http_client.close_async()

    async def _call(self, operation: str, request: Callable[[], Awaitable[T]]) -> T:
        try:
            return await asyncio.wait_for(request(), timeout=self._timeout)
        except asyncio.TimeoutError:
            logger.warning("Stripe call timed out", extra_data={"operation": operation, "timeout": self._timeout})
            raise ServiceTimeoutError("stripe", self._timeout)
        except stripe.StripeError as e:
            raise ProviderLookupError(operation, str(e)) from e

    async def retrieve_subscription(self, subscription_id: str) -> dict[str, Any]:
        subscription = await self._call(
            "subscription.retrieve",
            lambda: self._client.v1.subscriptions.retrieve_async(subscription_id),
        )
        return _as_dict(subscription)

    async def find_customer_id_by_email(self, email: str) -> Optional[str]:
        result = await self._call(
            "customer.list",
            lambda: self._client.v1.customers.list_async(params={"email": email, "limit": 1}),
        )
        customers = _as_dict(result).get("data") or []
        if not customers:
            return None
        customer_id = _as_dict(customers[0]).get("id")
        return customer_id if isinstance(customer_id, str) else None

    async def first_line_item_price_id(self, session_id: str) -> Optional[str]:
        result = await self._call(
            "checkout.session.list_line_items",
            lambda: self._client.v1.checkout.sessions.line_items.list_async(session_id, params={"limit": 1}),
        )
        items = _as_dict(result).get("data") or []
        if not items:
            return None
        return price_id_of(_as_dict(items[0]).get("price"))


def _as_dict(obj: Any) -> dict[str, Any]:
    """StripeObject -> plain dict (recursively)."""
    if obj is None:
        return {}
    to_dict = getattr(obj, "to_dict", None) or getattr(obj, "to_dict_recursive", None)
    if callable(to_dict):
        return to_dict()
    if isinstance(obj, dict):
        return obj
    return dict(obj)


def price_id_of(price: Any) -> Optional[str]:
    """A price reference is either the bare id or an expanded price object."""
    if isinstance(price, str):
        return price or None
    if isinstance(price, dict):
        price_id = price.get("id")
        return price_id if isinstance(price_id, str) and price_id else None
    return None


def subscription_price_id(subscription: dict[str, Any]) -> Optional[str]:
    """Price of the first subscription item (plans here are single-item)."""
    items = subscription.get("items")
    data = items.get("data") if isinstance(items, dict) else None
    if not data or not isinstance(data[0], dict):
        return None
    return price_id_of(data[0].get("price"))


def subscription_amount(subscription: dict[str, Any]) -> tuple[Optional[int], Optional[str]]:
    items = subscription.get("items")
    data = items.get("data") if isinstance(items, dict) else None
    if not data or not isinstance(data[0], dict):
        return None, subscription.get("currency")
    price = data[0].get("price")
    if not isinstance(price, dict):
        return None, subscription.get("currency")
    amount = price.get("unit_amount")
    return (
        amount if isinstance(amount, int) else None,
        price.get("currency") or subscription.get("currency"),
    )
