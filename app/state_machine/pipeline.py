"""
Pipeline primitives: named steps with a declared failure policy and a
structured result. The router, not the step, decides what a failure means.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from app.state_machine.states import EventProcessingState


class StepPolicy(str, Enum):
    STRICT = "strict"            # failure aborts the event and asks for redelivery
    BEST_EFFORT = "best_effort"  # failure is logged, the event still completes


class StepStatus(str, Enum):
    SUCCEEDED = "succeeded"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class StepResult:
    step: str
    status: StepStatus
    error: Optional[str] = None
    detail: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status != StepStatus.FAILED

    @classmethod
    def succeeded(cls, step: str, **detail: Any) -> "StepResult":
        return cls(step=step, status=StepStatus.SUCCEEDED, detail=detail)

    @classmethod
    def skipped(cls, step: str, reason: str) -> "StepResult":
        return cls(step=step, status=StepStatus.SKIPPED, detail={"reason": reason})

    @classmethod
    def failed(cls, step: str, error: str) -> "StepResult":
        return cls(step=step, status=StepStatus.FAILED, error=error)


@dataclass(frozen=True)
class PipelineStep:
    name: str
    policy: StepPolicy
    # State entered once the step has run (whatever its result under best-effort)
    reaches: EventProcessingState
    run: Callable[[], Awaitable[StepResult]]
