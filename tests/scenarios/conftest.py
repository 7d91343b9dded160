"""
Fixtures and helpers for end-to-end access scenarios.

Provides:
- Stripe event payload builders
- A signed POST helper against /api/stripe/webhook
- Record lookup helpers
"""
import json
from typing import Any

import pytest

from app.db.keyed_store import customer_key, onboarded_key
from tests.conftest import PRICE_PAIR, build_event, sign_payload


# ============================================================================
# Payload builders
# ============================================================================

def checkout_completed(event_id: str, customer_id: str, email: str, subscription_id: str) -> dict[str, Any]:
    return build_event(event_id, "checkout.session.completed", {
        "id": f"cs_{event_id}",
        "object": "checkout.session",
        "customer": customer_id,
        "customer_email": email,
        "mode": "subscription",
        "payment_status": "paid",
        "subscription": subscription_id,
        "amount_total": 4900,
        "currency": "usd",
    })


def subscription_event(
    event_id: str,
    event_type: str,
    customer_id: str,
    subscription_id: str,
    status: str,
    price_id: str | None = PRICE_PAIR,
) -> dict[str, Any]:
    obj: dict[str, Any] = {
        "id": subscription_id,
        "object": "subscription",
        "customer": customer_id,
        "status": status,
    }
    if price_id:
        obj["items"] = {"data": [{"price": {"id": price_id, "unit_amount": 4900, "currency": "usd"}}]}
    return build_event(event_id, event_type, obj)


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def post_event(test_client):
    """Sign and POST an event; returns the response"""
    async def _post(event: dict[str, Any]):
        payload = json.dumps(event)
        return await test_client.post(
            "/api/stripe/webhook",
            content=payload.encode(),
            headers={"Stripe-Signature": sign_payload(payload)},
        )
    return _post


@pytest.fixture
def stored_record(fake_redis):
    def _get(customer_id: str) -> dict[str, Any] | None:
        raw = fake_redis.data.get(customer_key(customer_id))
        return json.loads(raw) if raw else None
    return _get


@pytest.fixture
def is_onboarded(fake_redis):
    def _check(customer_id: str) -> bool:
        return onboarded_key(customer_id) in fake_redis.data
    return _check
