"""
State Machine Module for Webhook Event Processing
"""
from app.state_machine.states import EventProcessingState, is_valid_transition
from app.state_machine.pipeline import PipelineStep, StepPolicy, StepResult, StepStatus

__all__ = [
    "EventProcessingState",
    "is_valid_transition",
    "PipelineStep",
    "StepPolicy",
    "StepResult",
    "StepStatus",
]
