"""
Wiring for the webhook pipeline.

Long-lived clients (Redis, Stripe provider, Fulfillment client) are built
once at startup and kept on ``app.state``; the lightweight services around
them are assembled per request.
"""
import redis.asyncio as aioredis
from fastapi import Depends, Request

from app.core.config import Settings, get_settings
from app.core.redis_client import get_redis
from app.db.keyed_store import KeyedStore
from app.domain.services.authenticator import WebhookAuthenticator
from app.domain.services.customer_store import CustomerRecordStore
from app.domain.services.event_classifier import EventClassifier
from app.domain.services.event_router import EventRouter
from app.domain.services.fulfillment_client import FulfillmentClient
from app.domain.services.idempotency_gate import IdempotencyGate
from app.domain.services.onboarding_service import OnboardingDispatcher
from app.domain.services.order_ledger import OrderLedgerPersister
from app.domain.services.plan_resolver import PlanResolver
from app.domain.services.stripe_provider import StripeProvider


def build_event_router(
    settings: Settings,
    redis: aioredis.Redis,
    provider: StripeProvider,
    fulfillment: FulfillmentClient,
) -> EventRouter:
    store = KeyedStore(redis)
    return EventRouter(
        settings=settings,
        authenticator=WebhookAuthenticator(settings),
        gate=IdempotencyGate(store, settings),
        classifier=EventClassifier(provider),
        plan_resolver=PlanResolver(settings.price_plan_table()),
        customers=CustomerRecordStore(store),
        ledger=OrderLedgerPersister(fulfillment),
        onboarding=OnboardingDispatcher(store, fulfillment),
    )


async def get_event_router(
    request: Request,
    settings: Settings = Depends(get_settings),
    redis: aioredis.Redis = Depends(get_redis),
) -> EventRouter:
    return build_event_router(
        settings,
        redis,
        request.app.state.stripe_provider,
        request.app.state.fulfillment_client,
    )


async def get_customer_store(redis: aioredis.Redis = Depends(get_redis)) -> CustomerRecordStore:
    return CustomerRecordStore(KeyedStore(redis))
