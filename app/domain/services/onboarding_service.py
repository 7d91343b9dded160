"""
Onboarding dispatcher - exactly one alias + credential notification per customer.

The ``onboarded:<customer id>`` marker is written only after the whole chain
succeeds. Any failure leaves it unset so the next qualifying event (or a
redelivery of this one) tries again.
"""
from datetime import datetime, timezone
from typing import Optional

from app.core.exceptions import AppException
from app.core.logging import get_logger
from app.core.validation import EmailValidator
from app.db.keyed_store import KeyedStore, onboarded_key
from app.domain.events import AccessState
from app.domain.services.fulfillment_client import FulfillmentClient
from app.state_machine.pipeline import StepResult

logger = get_logger(__name__)

STEP_NAME = "onboarding"


class OnboardingDispatcher:
    def __init__(self, store: KeyedStore, client: FulfillmentClient) -> None:
        self._store = store
        self._client = client

    async def is_onboarded(self, customer_id: Optional[str], email: Optional[str]) -> bool:
        identity = customer_id or EmailValidator.normalize(email)
        if not identity:
            return False
        return await self._store.get(onboarded_key(identity)) is not None

    async def ensure_onboarded(
        self,
        customer_id: Optional[str],
        email: Optional[str],
        access: AccessState,
        plan_key: Optional[str],
        plan_name: Optional[str],
        event_id: str,
    ) -> StepResult:
        email = EmailValidator.normalize(email)
        if access != AccessState.ACTIVE or not customer_id or not email:
            return StepResult.skipped(STEP_NAME, reason="not_eligible")

        if await self.is_onboarded(customer_id, email):
            return StepResult.skipped(STEP_NAME, reason="already_onboarded")

        try:
            if self._client.has_onboarding_secret:
                # Phase 1: alias only, no user-facing mail yet
                alias = await self._client.create_alias(
                    email=email,
                    customer_id=customer_id,
                    notify_user=False,
                    idempotency_key=f"alias-{event_id}",
                )
                # Phase 2: credential mint + plan-specific notification
                notification_sent = await self._client.onboard_notify(
                    customer_id=customer_id,
                    email=email,
                    alias=alias,
                    plan_key=plan_key,
                    plan_name=plan_name,
                )
                mode = "two_phase"
            else:
                logger.warning(
                    "Onboarding secret not configured, using single-phase alias onboarding",
                    extra_data={"customer_id": customer_id},
                )
                alias = await self._client.create_alias(
                    email=email,
                    customer_id=customer_id,
                    notify_user=True,
                    idempotency_key=f"alias-{event_id}",
                )
                notification_sent = True
                mode = "single_phase"

            await self._store.put(onboarded_key(customer_id), datetime.now(timezone.utc).isoformat())
        except AppException as e:
            logger.error(
                "Onboarding failed, marker left unset for retry",
                extra_data={
                    "customer_id": customer_id,
                    "email": EmailValidator.mask(email),
                    "error_code": e.error_code.value,
                    "error": e.message,
                },
            )
            return StepResult.failed(STEP_NAME, e.message)

        logger.info(
            "Customer onboarded",
            extra_data={
                "customer_id": customer_id,
                "email": EmailValidator.mask(email),
                "mode": mode,
                "notification_sent": notification_sent,
                "plan_key": plan_key,
            },
        )
        return StepResult.succeeded(STEP_NAME, alias=alias, mode=mode)
