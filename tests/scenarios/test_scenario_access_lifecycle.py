"""
Scenario: a customer's access from purchase to cancellation

Covers:
- checkout (evt_1) grants access, resolves the plan, onboards once
- subscription deleted (evt_2) locks access and keeps the plan
- replays of either event change nothing
- a past_due update and recovery flip access without re-onboarding
"""
import pytest

from app.core.config import FIRSTFLAME_PAIR_KEY, FIRSTFLAME_PAIR_NAME, FIRSTFLAME_TIER
from tests.conftest import PRICE_PAIR
from tests.scenarios.conftest import checkout_completed, subscription_event


@pytest.fixture(autouse=True)
def active_subscription(fake_stripe):
    fake_stripe.subscriptions["sub_1"] = {
        "id": "sub_1",
        "customer": "cus_1",
        "status": "active",
        "items": {"data": [{"price": {"id": PRICE_PAIR, "unit_amount": 4900, "currency": "usd"}}]},
    }


@pytest.mark.scenario
class TestAccessLifecycle:

    async def test_purchase_then_cancellation(self, post_event, stored_record, is_onboarded, fulfillment_server):
        # --- evt_1: checkout completed ---
        response = await post_event(checkout_completed("evt_1", "cus_1", "a@x.com", "sub_1"))
        assert response.status_code == 200

        record = stored_record("cus_1")
        assert record["customerId"] == "cus_1"
        assert record["email"] == "a@x.com"
        assert record["subscriptionId"] == "sub_1"
        assert record["subscriptionStatus"] == "active"
        assert record["tier"] == FIRSTFLAME_TIER
        assert record["planKey"] == FIRSTFLAME_PAIR_KEY
        assert record["planName"] == FIRSTFLAME_PAIR_NAME
        assert record["access"] == "active"
        assert is_onboarded("cus_1")
        assert len(fulfillment_server.calls_to("onboard-notify")) == 1

        # --- evt_2: subscription deleted ---
        response = await post_event(
            subscription_event("evt_2", "customer.subscription.deleted", "cus_1", "sub_1", "canceled")
        )
        assert response.status_code == 200

        record = stored_record("cus_1")
        assert record["access"] == "locked"
        assert record["subscriptionStatus"] == "canceled"
        assert record["tier"] == FIRSTFLAME_TIER
        assert record["planKey"] == FIRSTFLAME_PAIR_KEY
        assert record["email"] == "a@x.com"
        assert record["lastEventId"] == "evt_2"

        # Ledger got one entry per event; onboarding never repeated
        assert [o["eventId"] for o in fulfillment_server.json_of("orders")] == ["evt_1", "evt_2"]
        assert fulfillment_server.json_of("orders")[1]["email"] == "a@x.com"
        assert len(fulfillment_server.calls_to("alias")) == 1

    async def test_replays_change_nothing(self, post_event, stored_record, fake_redis, fulfillment_server):
        evt_1 = checkout_completed("evt_1", "cus_1", "a@x.com", "sub_1")
        evt_2 = subscription_event("evt_2", "customer.subscription.deleted", "cus_1", "sub_1", "canceled")
        await post_event(evt_1)
        await post_event(evt_2)
        state = dict(fake_redis.data)
        calls = len(fulfillment_server.requests)

        for event in (evt_1, evt_2, evt_1):
            response = await post_event(event)
            assert response.status_code == 200
            assert response.json()["outcome"] == "already_done"

        assert fake_redis.data == state
        assert len(fulfillment_server.requests) == calls
        assert stored_record("cus_1")["access"] == "locked"

    async def test_dunning_and_recovery(self, post_event, stored_record, fulfillment_server):
        await post_event(checkout_completed("evt_1", "cus_1", "a@x.com", "sub_1"))

        await post_event(subscription_event("evt_3", "customer.subscription.updated", "cus_1", "sub_1", "past_due"))
        assert stored_record("cus_1")["access"] == "locked"

        await post_event(subscription_event("evt_4", "customer.subscription.updated", "cus_1", "sub_1", "active"))
        record = stored_record("cus_1")
        assert record["access"] == "active"
        assert record["planKey"] == FIRSTFLAME_PAIR_KEY

        assert len(fulfillment_server.calls_to("alias")) == 1

    async def test_update_without_items_keeps_plan(self, post_event, stored_record, fake_stripe):
        await post_event(checkout_completed("evt_1", "cus_1", "a@x.com", "sub_1"))
        fake_stripe.subscriptions["sub_1"] = {"id": "sub_1", "status": "trialing"}

        await post_event(
            subscription_event("evt_5", "customer.subscription.updated", "cus_1", "sub_1", "trialing", price_id=None)
        )

        record = stored_record("cus_1")
        assert record["access"] == "active"
        assert record["subscriptionStatus"] == "trialing"
        assert record["planKey"] == FIRSTFLAME_PAIR_KEY


@pytest.mark.scenario
class TestStrictFailureRecovery:

    async def test_ledger_outage_then_redelivery(self, post_event, stored_record, fulfillment_server, is_onboarded):
        fulfillment_server.fail("orders", status_code=500)

        response = await post_event(checkout_completed("evt_1", "cus_1", "a@x.com", "sub_1"))
        assert response.status_code == 500
        assert stored_record("cus_1") is None
        assert not is_onboarded("cus_1")

        fulfillment_server.fixed.clear()
        response = await post_event(checkout_completed("evt_1", "cus_1", "a@x.com", "sub_1"))

        assert response.status_code == 200
        assert stored_record("cus_1")["access"] == "active"
        assert is_onboarded("cus_1")
