"""
Domain Services
"""
from app.domain.services.access_policy import derive_access
from app.domain.services.plan_resolver import PlanResolver
from app.domain.services.authenticator import WebhookAuthenticator
from app.domain.services.idempotency_gate import GateDecision, IdempotencyGate
from app.domain.services.customer_store import CustomerRecordStore
from app.domain.services.stripe_provider import StripeProvider
from app.domain.services.event_classifier import EventClassifier
from app.domain.services.fulfillment_client import FulfillmentClient
from app.domain.services.order_ledger import OrderLedgerPersister
from app.domain.services.onboarding_service import OnboardingDispatcher
from app.domain.services.event_router import EventRouter, WebhookOutcome

__all__ = [
    "derive_access",
    "PlanResolver",
    "WebhookAuthenticator",
    "GateDecision",
    "IdempotencyGate",
    "CustomerRecordStore",
    "StripeProvider",
    "EventClassifier",
    "FulfillmentClient",
    "OrderLedgerPersister",
    "OnboardingDispatcher",
    "EventRouter",
    "WebhookOutcome",
]
