"""
State Definitions for Webhook Event Processing
"""
from enum import Enum


class EventProcessingState(str, Enum):
    """Lifecycle of one inbound provider delivery"""

    RECEIVED = "EVENT.RECEIVED"
    AUTHENTICATED = "EVENT.AUTHENTICATED"
    PROCESSING = "EVENT.LOCKED.PROCESSING"
    CLASSIFIED = "EVENT.CLASSIFIED"
    RECONCILED = "EVENT.RECONCILED"
    PERSISTED = "EVENT.PERSISTED"
    ONBOARDED = "EVENT.ONBOARDED"

    # Terminal states
    DONE = "EVENT.LOCKED.DONE"
    REJECTED = "EVENT.REJECTED"
    DUPLICATE = "EVENT.DUPLICATE"
    ABORTED = "EVENT.ABORTED"


# State transitions mapping
EVENT_TRANSITIONS = {
    EventProcessingState.RECEIVED: [
        EventProcessingState.AUTHENTICATED,
        EventProcessingState.REJECTED,
    ],
    EventProcessingState.AUTHENTICATED: [
        EventProcessingState.PROCESSING,
        EventProcessingState.DUPLICATE,
    ],
    EventProcessingState.PROCESSING: [
        EventProcessingState.CLASSIFIED,
        EventProcessingState.ABORTED,
    ],
    # Unhandled event types go straight to DONE
    EventProcessingState.CLASSIFIED: [
        EventProcessingState.RECONCILED,
        EventProcessingState.PERSISTED,
        EventProcessingState.DONE,
        EventProcessingState.ABORTED,
    ],
    # The access-granting checkout persists the ledger before reconciling;
    # every other event reconciles first
    EventProcessingState.PERSISTED: [
        EventProcessingState.RECONCILED,
        EventProcessingState.ONBOARDED,
        EventProcessingState.ABORTED,
    ],
    EventProcessingState.RECONCILED: [
        EventProcessingState.PERSISTED,
        EventProcessingState.ONBOARDED,
        EventProcessingState.ABORTED,
    ],
    EventProcessingState.ONBOARDED: [
        EventProcessingState.DONE,
        EventProcessingState.ABORTED,
    ],
}


def is_valid_transition(current: EventProcessingState, target: EventProcessingState) -> bool:
    return target in EVENT_TRANSITIONS.get(current, [])
