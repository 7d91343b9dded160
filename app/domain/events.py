"""
Normalized provider events.

The classifier turns a verified Stripe envelope into exactly one of the
variants below; nothing downstream of the classifier reads the raw provider
payload.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union


class StripeEventType(str, Enum):
    """Provider event types the engine acts on"""

    CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"
    SUBSCRIPTION_CREATED = "customer.subscription.created"
    SUBSCRIPTION_UPDATED = "customer.subscription.updated"
    SUBSCRIPTION_DELETED = "customer.subscription.deleted"
    INVOICE_PAYMENT_FAILED = "invoice.payment_failed"


class AccessState(str, Enum):
    """Derived access to the paid service"""

    ACTIVE = "active"
    LOCKED = "locked"


@dataclass(frozen=True)
class ProviderEvent:
    """Authenticated event envelope (output of the authenticator)"""

    id: str
    type: str
    data_object: dict[str, Any]
    livemode: bool = False
    created: Optional[int] = None


@dataclass(frozen=True)
class PlanInfo:
    tier: Optional[str] = None
    plan_key: Optional[str] = None
    plan_name: Optional[str] = None


@dataclass(frozen=True)
class CheckoutCompleted:
    event_id: str
    event_type: str
    session_id: Optional[str]
    customer_id: Optional[str]
    email: Optional[str]
    mode: Optional[str]
    payment_status: Optional[str]
    subscription_id: Optional[str]
    subscription_status: Optional[str]
    price_id: Optional[str]
    amount_total: Optional[int] = None
    currency: Optional[str] = None
    metadata: dict[str, str] = field(default_factory=dict)

    @property
    def is_one_time(self) -> bool:
        """A completed checkout with no subscription behind it"""
        return self.subscription_id is None and self.mode != "subscription"


@dataclass(frozen=True)
class SubscriptionUpdated:
    event_id: str
    event_type: str
    customer_id: Optional[str]
    subscription_id: Optional[str]
    status: Optional[str]
    price_id: Optional[str]
    amount: Optional[int] = None
    currency: Optional[str] = None
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class SubscriptionDeleted:
    event_id: str
    event_type: str
    customer_id: Optional[str]
    subscription_id: Optional[str]
    status: Optional[str]
    price_id: Optional[str]
    amount: Optional[int] = None
    currency: Optional[str] = None
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class InvoicePaymentFailed:
    event_id: str
    event_type: str
    invoice_id: Optional[str]
    customer_id: Optional[str]
    email: Optional[str]
    subscription_id: Optional[str]
    amount_due: Optional[int] = None
    currency: Optional[str] = None


@dataclass(frozen=True)
class Unhandled:
    event_id: str
    event_type: str


ClassifiedEvent = Union[
    CheckoutCompleted,
    SubscriptionUpdated,
    SubscriptionDeleted,
    InvoicePaymentFailed,
    Unhandled,
]
