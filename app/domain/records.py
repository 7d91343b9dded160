"""
Persisted shapes: the customer record kept in Redis and the order snapshot
sent to the Fulfillment Service. Both serialize with camelCase keys.
"""
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from app.domain.events import AccessState


class CustomerRecord(BaseModel):
    """Canonical access/billing state for one customer"""

    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)

    email: Optional[str] = None
    customer_id: Optional[str] = Field(default=None, alias="customerId")
    subscription_id: Optional[str] = Field(default=None, alias="subscriptionId")
    subscription_status: Optional[str] = Field(default=None, alias="subscriptionStatus")
    price_id: Optional[str] = Field(default=None, alias="priceId")
    tier: Optional[str] = None
    plan_key: Optional[str] = Field(default=None, alias="planKey")
    plan_name: Optional[str] = Field(default=None, alias="planName")
    access: AccessState = AccessState.LOCKED
    updated_at: Optional[str] = Field(default=None, alias="updatedAt")
    last_event_id: Optional[str] = Field(default=None, alias="lastEventId")
    last_event_type: Optional[str] = Field(default=None, alias="lastEventType")


class CustomerPatch(BaseModel):
    """
    Partial update produced by one event.

    Fields left as None are absent from the update and keep their stored value.
    ``access`` is always set; it comes from the access policy for this event.
    """

    email: Optional[str] = None
    customer_id: Optional[str] = None
    subscription_id: Optional[str] = None
    subscription_status: Optional[str] = None
    price_id: Optional[str] = None
    tier: Optional[str] = None
    plan_key: Optional[str] = None
    plan_name: Optional[str] = None
    access: AccessState


class OrderSnapshot(BaseModel):
    """Normalized transaction record for the Fulfillment Service order ledger"""

    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)

    event_id: str = Field(alias="eventId")
    event_type: str = Field(alias="eventType")
    customer_id: Optional[str] = Field(default=None, alias="customerId")
    email: Optional[str] = None
    amount: Optional[int] = None
    currency: Optional[str] = None
    status: Optional[str] = None
    access: AccessState
    price_id: Optional[str] = Field(default=None, alias="priceId")
    tier: Optional[str] = None
    plan_key: Optional[str] = Field(default=None, alias="planKey")
    plan_name: Optional[str] = Field(default=None, alias="planName")
    timestamp: str
