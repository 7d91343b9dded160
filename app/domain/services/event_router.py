"""
Event router - runs one Stripe delivery through the ingestion pipeline.

    authenticate -> gate.begin -> classify -> [steps] -> gate.commit

Steps for the access-granting checkout:
    order_ledger (strict) -> reconcile (strict) -> onboarding (best-effort)
Steps for every other event:
    reconcile (strict) -> order_ledger (best-effort) -> onboarding (best-effort)

Any strict failure, or any unexpected exception after the gate was entered,
deletes the event lock and raises StrictStepFailedError (HTTP 500) so Stripe
redelivers and the whole event is reprocessed from scratch.
"""
from dataclasses import dataclass, field
from typing import Any, Optional

from app.core.config import Settings
from app.core.exceptions import (
    ConfigurationError,
    StrictStepFailedError,
    WebhookException,
)
from app.core.logging import bind_event_id, get_logger
from app.domain.events import (
    AccessState,
    CheckoutCompleted,
    ClassifiedEvent,
    InvoicePaymentFailed,
    PlanInfo,
    SubscriptionDeleted,
    SubscriptionUpdated,
    Unhandled,
)
from app.domain.records import CustomerPatch, CustomerRecord
from app.domain.services.access_policy import derive_access
from app.domain.services.authenticator import WebhookAuthenticator
from app.domain.services.customer_store import CustomerRecordStore
from app.domain.services.event_classifier import EventClassifier
from app.domain.services.idempotency_gate import GateDecision, IdempotencyGate
from app.domain.services.onboarding_service import OnboardingDispatcher
from app.domain.services.order_ledger import OrderLedgerPersister, build_snapshot
from app.domain.services.plan_resolver import PlanResolver
from app.state_machine.manager import EventStateTracker
from app.state_machine.pipeline import PipelineStep, StepPolicy, StepResult
from app.state_machine.states import EventProcessingState

logger = get_logger(__name__)

RECONCILE_STEP = "reconcile"


@dataclass
class WebhookOutcome:
    state: EventProcessingState
    event_id: Optional[str] = None
    event_type: Optional[str] = None
    reason: Optional[str] = None
    steps: list[StepResult] = field(default_factory=list)

    def to_response(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "received": True,
            "outcome": self.reason or self.state.name.lower(),
            "eventId": self.event_id,
        }
        if self.steps:
            body["steps"] = {s.step: s.status.value for s in self.steps}
        return body


@dataclass
class _EventContext:
    event: ClassifiedEvent
    plan: PlanInfo
    access: AccessState
    patch: CustomerPatch
    record: Optional[CustomerRecord] = None


def _derive(event: ClassifiedEvent, resolver: PlanResolver) -> tuple[PlanInfo, AccessState, CustomerPatch]:
    """Plan, access and the customer patch for one classified event."""
    if isinstance(event, CheckoutCompleted):
        plan = resolver.resolve(event.price_id, event.metadata)
        access = derive_access(event.subscription_status, one_time_completion=event.is_one_time)
        patch = CustomerPatch(
            email=event.email,
            customer_id=event.customer_id,
            subscription_id=event.subscription_id,
            subscription_status=event.subscription_status,
            price_id=event.price_id,
            tier=plan.tier,
            plan_key=plan.plan_key,
            plan_name=plan.plan_name,
            access=access,
        )
    elif isinstance(event, (SubscriptionUpdated, SubscriptionDeleted)):
        plan = resolver.resolve(event.price_id, event.metadata)
        access = derive_access(event.status)
        patch = CustomerPatch(
            customer_id=event.customer_id,
            subscription_id=event.subscription_id,
            subscription_status=event.status,
            price_id=event.price_id,
            tier=plan.tier,
            plan_key=plan.plan_key,
            plan_name=plan.plan_name,
            access=access,
        )
    elif isinstance(event, InvoicePaymentFailed):
        # A failed invoice only confirms "locked"; plan fields stay untouched
        plan = PlanInfo()
        access = derive_access(None)
        patch = CustomerPatch(
            email=event.email,
            customer_id=event.customer_id,
            subscription_id=event.subscription_id,
            access=access,
        )
    else:
        raise TypeError(f"No derivation for {type(event).__name__}")
    return plan, access, patch


class EventRouter:
    def __init__(
        self,
        settings: Settings,
        authenticator: WebhookAuthenticator,
        gate: IdempotencyGate,
        classifier: EventClassifier,
        plan_resolver: PlanResolver,
        customers: CustomerRecordStore,
        ledger: OrderLedgerPersister,
        onboarding: OnboardingDispatcher,
    ) -> None:
        self._settings = settings
        self._authenticator = authenticator
        self._gate = gate
        self._classifier = classifier
        self._plan_resolver = plan_resolver
        self._customers = customers
        self._ledger = ledger
        self._onboarding = onboarding

    async def handle(self, raw_body: bytes, signature_header: Optional[str]) -> WebhookOutcome:
        """
        Process one delivery end to end.

        Returns the outcome for a 200 response (done / duplicate / unhandled).

        Raises:
            ConfigurationError: required secrets missing (500, nothing touched)
            WebhookException: authentication or envelope failure (400)
            StrictStepFailedError: a strict step failed, lock released (500)
            IdempotencyAbortError: the lock could not be released (500)
        """
        tracker = EventStateTracker()
        bind_event_id(None)

        missing = self._settings.missing_webhook_config()
        if missing:
            logger.error("Stripe webhook rejected: server misconfigured", extra_data={"missing": missing})
            raise ConfigurationError(missing)

        try:
            event = self._authenticator.verify(raw_body, signature_header)
        except WebhookException:
            tracker.advance(EventProcessingState.REJECTED)
            raise
        tracker.advance(EventProcessingState.AUTHENTICATED)
        bind_event_id(event.id)

        logger.info(
            "Stripe webhook verified",
            extra_data={"event_type": event.type, "event_id": event.id, "livemode": event.livemode},
        )

        decision = await self._gate.begin(event.id)
        if decision != GateDecision.PROCEED:
            tracker.advance(EventProcessingState.DUPLICATE)
            return WebhookOutcome(
                state=tracker.state,
                event_id=event.id,
                event_type=event.type,
                reason=decision.value,
            )
        tracker.advance(EventProcessingState.PROCESSING)

        try:
            classified = await self._classifier.classify(event)
            tracker.advance(EventProcessingState.CLASSIFIED)

            if isinstance(classified, Unhandled):
                results: list[StepResult] = []
                reason: Optional[str] = "unhandled"
            else:
                results = await self._run_steps(self._plan_steps(classified), tracker, event.id)
                reason = None
                tracker.advance(EventProcessingState.ONBOARDED)
        except Exception as e:
            tracker.advance(EventProcessingState.ABORTED)
            logger.error(
                "Event processing aborted, releasing lock for redelivery",
                extra_data={"event_id": event.id, "event_type": event.type, "error": str(e)},
            )
            await self._gate.abort(event.id)
            if isinstance(e, StrictStepFailedError):
                raise
            raise StrictStepFailedError("pipeline", event.id, str(e)) from e

        await self._commit(event.id)
        tracker.advance(EventProcessingState.DONE)

        logger.info(
            "Stripe event processed",
            extra_data={
                "event_type": event.type,
                "steps": {r.step: r.status.value for r in results},
                "states": [s.value for s in tracker.history],
            },
        )
        return WebhookOutcome(
            state=tracker.state,
            event_id=event.id,
            event_type=event.type,
            reason=reason,
            steps=results,
        )

    def _plan_steps(self, event: ClassifiedEvent) -> list[PipelineStep]:
        plan, access, patch = _derive(event, self._plan_resolver)
        ctx = _EventContext(event=event, plan=plan, access=access, patch=patch)
        granting = isinstance(event, CheckoutCompleted) and access == AccessState.ACTIVE

        async def reconcile() -> StepResult:
            ctx.record = await self._customers.merge(patch, event.event_id, event.event_type)
            if ctx.record is None:
                return StepResult.skipped(RECONCILE_STEP, reason="no_customer_identity")
            return StepResult.succeeded(RECONCILE_STEP, access=ctx.record.access)

        async def persist_order() -> StepResult:
            record_email = ctx.record.email if ctx.record else None
            snapshot = build_snapshot(event, plan, access, email=record_email)
            return await self._ledger.upsert(snapshot)

        async def onboard() -> StepResult:
            record = ctx.record
            return await self._onboarding.ensure_onboarded(
                customer_id=record.customer_id if record else patch.customer_id,
                email=record.email if record else patch.email,
                access=access,
                plan_key=record.plan_key if record else plan.plan_key,
                plan_name=record.plan_name if record else plan.plan_name,
                event_id=event.event_id,
            )

        reconcile_step = PipelineStep(
            RECONCILE_STEP, StepPolicy.STRICT, EventProcessingState.RECONCILED, reconcile
        )
        onboard_step = PipelineStep(
            "onboarding", StepPolicy.BEST_EFFORT, EventProcessingState.ONBOARDED, onboard
        )

        if granting:
            # Ledger and access grant must never diverge: ledger first, strictly
            return [
                PipelineStep("order_ledger", StepPolicy.STRICT, EventProcessingState.PERSISTED, persist_order),
                reconcile_step,
                onboard_step,
            ]
        return [
            reconcile_step,
            PipelineStep("order_ledger", StepPolicy.BEST_EFFORT, EventProcessingState.PERSISTED, persist_order),
            onboard_step,
        ]

    async def _run_steps(
        self,
        steps: list[PipelineStep],
        tracker: EventStateTracker,
        event_id: str,
    ) -> list[StepResult]:
        results: list[StepResult] = []
        for step in steps:
            try:
                result = await step.run()
            except Exception as e:
                logger.error(
                    f"Pipeline step '{step.name}' raised",
                    extra_data={"step": step.name, "policy": step.policy.value, "error": str(e)},
                    exc_info=True,
                )
                result = StepResult.failed(step.name, str(e))

            results.append(result)
            if not result.ok:
                if step.policy == StepPolicy.STRICT:
                    raise StrictStepFailedError(step.name, event_id, result.error)
                logger.warning(
                    f"Best-effort step '{step.name}' failed, event continues",
                    extra_data={"step": step.name, "error": result.error},
                )

            # Onboarding is the last step; its state is entered by the caller
            if step.reaches != EventProcessingState.ONBOARDED:
                tracker.advance(step.reaches)
        return results

    async def _commit(self, event_id: str) -> None:
        try:
            await self._gate.commit(event_id)
        except Exception as e:
            # Work is complete and repeatable; the processing lock expires on its own
            logger.error(
                "Event processed but lock could not be marked done",
                extra_data={"event_id": event_id, "error": str(e)},
                exc_info=True,
            )
