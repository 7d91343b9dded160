"""
State Manager - tracks the processing state of one webhook delivery
"""
from app.core.logging import get_logger
from app.state_machine.states import (
    EventProcessingState,
    is_valid_transition,
)

logger = get_logger(__name__)


class EventStateTracker:
    """In-request record of the states one delivery passed through"""

    def __init__(self) -> None:
        self._state = EventProcessingState.RECEIVED
        self._history: list[EventProcessingState] = [EventProcessingState.RECEIVED]

    @property
    def state(self) -> EventProcessingState:
        return self._state

    @property
    def history(self) -> list[EventProcessingState]:
        return list(self._history)

    def advance(self, target: EventProcessingState) -> None:
        """
        Move to ``target``.

        An invalid transition is a programming error in the router; it is
        logged and the move is still recorded so the outcome stays accurate.
        """
        if not is_valid_transition(self._state, target):
            logger.error(
                "Invalid event state transition",
                extra_data={"from": self._state.value, "to": target.value},
            )
        self._state = target
        self._history.append(target)
