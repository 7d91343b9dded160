"""
Pytest Configuration and Fixtures

Provides fixtures for:
- In-memory Redis (FakeRedis)
- Test settings with every required secret populated
- Fake Stripe lookups and a recording Fulfillment Service (httpx.MockTransport)
- Signed webhook payload factory
- HTTP client against the FastAPI app
"""
import fnmatch
import hashlib
import hmac
import json
import time
from typing import Any, Callable, Optional

import httpx
import pytest

from app.core.config import Settings, get_settings
from app.db.keyed_store import KeyedStore
from app.domain.services.customer_store import CustomerRecordStore
from app.domain.services.event_classifier import EventClassifier
from app.domain.services.fulfillment_client import FulfillmentClient
from app.domain.services.onboarding_service import OnboardingDispatcher
from app.domain.services.order_ledger import OrderLedgerPersister
from app.api.dependencies.pipeline import build_event_router
from app.main import app

WEBHOOK_SECRET = "whsec_test_secret"
FULFILLMENT_URL = "http://fulfillment.test"
PRICE_INDIVIDUAL = "price_individual"
PRICE_PAIR = "price_pair"

# Note: no custom event_loop fixture; pytest-asyncio handles it with
# asyncio_mode=auto and asyncio_default_fixture_loop_scope=function


# ============================================================================
# In-memory Redis
# ============================================================================

class FakeRedis:
    """The subset of redis.asyncio.Redis the store uses (decode_responses=True)"""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.ttls: dict[str, Optional[int]] = {}
        self.fail_on: set[str] = set()
        self.closed = False

    def _check(self, op: str) -> None:
        if op in self.fail_on:
            raise ConnectionError(f"redis {op} unavailable")

    async def get(self, key: str) -> Optional[str]:
        self._check("get")
        return self.data.get(key)

    async def set(
        self,
        key: str,
        value: str,
        ex: Optional[int] = None,
        nx: bool = False,
    ) -> Optional[bool]:
        self._check("set")
        if nx and key in self.data:
            return None
        self.data[key] = value
        self.ttls[key] = ex
        return True

    async def delete(self, *keys: str) -> int:
        self._check("delete")
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                removed += 1
            self.ttls.pop(key, None)
        return removed

    async def scan_iter(self, match: str = "*"):
        for key in list(self.data):
            if fnmatch.fnmatchcase(key, match):
                yield key

    async def ping(self) -> bool:
        self._check("ping")
        return True

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def keyed_store(fake_redis: FakeRedis) -> KeyedStore:
    return KeyedStore(fake_redis)


# ============================================================================
# Settings
# ============================================================================

def make_settings(**overrides: Any) -> Settings:
    values: dict[str, Any] = {
        "DEBUG": False,
        "STRIPE_SECRET_KEY": "sk_test_123",
        "STRIPE_WEBHOOK_SECRET": WEBHOOK_SECRET,
        "STRIPE_PRICE_ID_FIRSTFLAME_INDIVIDUAL": PRICE_INDIVIDUAL,
        "STRIPE_PRICE_ID_FIRSTFLAME_PAIR": PRICE_PAIR,
        "FULFILLMENT_BASE_URL": FULFILLMENT_URL + "/",
        "FULFILLMENT_API_KEY": "ff_key",
        "FULFILLMENT_ONBOARDING_SECRET": "onboard_secret",
        "FULFILLMENT_MAX_RETRIES": 2,
        "FULFILLMENT_RETRY_BACKOFF_SECONDS": 0,
        "CUSTOMERS_EXPORT_KEY": "export_key",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def test_settings() -> Settings:
    return make_settings()


# ============================================================================
# Mock External Services
# ============================================================================

class FakeStripeProvider:
    """Stands in for StripeProvider; lookups are served from dicts"""

    def __init__(self) -> None:
        self.subscriptions: dict[str, dict[str, Any]] = {}
        self.customers_by_email: dict[str, str] = {}
        self.line_item_prices: dict[str, str] = {}
        self.errors: dict[str, Exception] = {}
        self.calls: list[tuple[str, str]] = []

    def _maybe_fail(self, operation: str) -> None:
        if operation in self.errors:
            raise self.errors[operation]

    async def retrieve_subscription(self, subscription_id: str) -> dict[str, Any]:
        self.calls.append(("subscription.retrieve", subscription_id))
        self._maybe_fail("subscription.retrieve")
        return self.subscriptions.get(subscription_id, {})

    async def find_customer_id_by_email(self, email: str) -> Optional[str]:
        self.calls.append(("customer.list", email))
        self._maybe_fail("customer.list")
        return self.customers_by_email.get(email)

    async def first_line_item_price_id(self, session_id: str) -> Optional[str]:
        self.calls.append(("checkout.session.list_line_items", session_id))
        self._maybe_fail("checkout.session.list_line_items")
        return self.line_item_prices.get(session_id)


@pytest.fixture
def fake_stripe() -> FakeStripeProvider:
    return FakeStripeProvider()


class FulfillmentRecorder:
    """
    httpx.MockTransport handler that records every call to the Fulfillment
    Service. Per-endpoint responses can be queued or fixed.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.fixed: dict[str, httpx.Response] = {}
        self.queued: dict[str, list[httpx.Response]] = {}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        endpoint = request.url.path.lstrip("/")
        queue = self.queued.get(endpoint)
        if queue:
            return queue.pop(0)
        if endpoint in self.fixed:
            return self.fixed[endpoint]
        if endpoint == "alias":
            body = json.loads(request.content)
            return httpx.Response(200, json={"alias": f"alias-{body['customerId']}"})
        if endpoint == "onboard-notify":
            return httpx.Response(200, json={"notificationSent": True})
        if endpoint == "orders":
            return httpx.Response(200, json={"ok": True})
        return httpx.Response(404, json={"error": "unknown endpoint"})

    def calls_to(self, endpoint: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path.lstrip("/") == endpoint]

    def json_of(self, endpoint: str) -> list[dict[str, Any]]:
        return [json.loads(r.content) for r in self.calls_to(endpoint)]

    def fail(self, endpoint: str, status_code: int = 500) -> None:
        self.fixed[endpoint] = httpx.Response(status_code, json={"error": "boom"})


@pytest.fixture
def fulfillment_server() -> FulfillmentRecorder:
    return FulfillmentRecorder()


@pytest.fixture
def fulfillment_client(test_settings: Settings, fulfillment_server: FulfillmentRecorder) -> FulfillmentClient:
    return FulfillmentClient(test_settings, transport=httpx.MockTransport(fulfillment_server))


@pytest.fixture
def customer_store(keyed_store: KeyedStore) -> CustomerRecordStore:
    return CustomerRecordStore(keyed_store)


@pytest.fixture
def ledger(fulfillment_client: FulfillmentClient) -> OrderLedgerPersister:
    return OrderLedgerPersister(fulfillment_client)


@pytest.fixture
def onboarding(keyed_store: KeyedStore, fulfillment_client: FulfillmentClient) -> OnboardingDispatcher:
    return OnboardingDispatcher(keyed_store, fulfillment_client)


@pytest.fixture
def classifier(fake_stripe: FakeStripeProvider) -> EventClassifier:
    return EventClassifier(fake_stripe)


@pytest.fixture
def event_router(test_settings, fake_redis, fake_stripe, fulfillment_client):
    return build_event_router(test_settings, fake_redis, fake_stripe, fulfillment_client)


# ============================================================================
# Signed payloads
# ============================================================================

def sign_payload(payload: str, secret: str = WEBHOOK_SECRET, timestamp: Optional[int] = None) -> str:
    """Stripe-Signature header value for ``payload`` (scheme v1, HMAC-SHA256)"""
    ts = timestamp if timestamp is not None else int(time.time())
    digest = hmac.new(
        secret.encode("utf-8"),
        f"{ts}.{payload}".encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()
    return f"t={ts},v1={digest}"


def build_event(event_id: str, event_type: str, data_object: dict[str, Any], **extra: Any) -> dict[str, Any]:
    return {
        "id": event_id,
        "object": "event",
        "type": event_type,
        "livemode": False,
        "created": 1700000000,
        "data": {"object": data_object},
        **extra,
    }


@pytest.fixture
def signed_event() -> Callable[..., tuple[bytes, str]]:
    """Factory: (event dict | raw str) -> (body bytes, Stripe-Signature)"""
    def _make(event: Any, secret: str = WEBHOOK_SECRET) -> tuple[bytes, str]:
        payload = event if isinstance(event, str) else json.dumps(event)
        return payload.encode("utf-8"), sign_payload(payload, secret)
    return _make


# ============================================================================
# HTTP client
# ============================================================================

@pytest.fixture
async def test_client(test_settings, fake_redis, fake_stripe, fulfillment_client):
    """HTTP client with in-memory dependencies on app.state"""
    from httpx import AsyncClient, ASGITransport

    app.dependency_overrides[get_settings] = lambda: test_settings
    app.state.redis = fake_redis
    app.state.stripe_provider = fake_stripe
    app.state.fulfillment_client = fulfillment_client

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
