"""
Tests for event processing states and the pipeline primitives
"""
import pytest

from app.state_machine.manager import EventStateTracker
from app.state_machine.pipeline import StepResult, StepStatus
from app.state_machine.states import EventProcessingState as S, is_valid_transition


class TestTransitions:

    @pytest.mark.unit
    @pytest.mark.parametrize("path", [
        [S.RECEIVED, S.AUTHENTICATED, S.PROCESSING, S.CLASSIFIED, S.PERSISTED, S.RECONCILED, S.ONBOARDED, S.DONE],
        [S.RECEIVED, S.AUTHENTICATED, S.PROCESSING, S.CLASSIFIED, S.RECONCILED, S.PERSISTED, S.ONBOARDED, S.DONE],
        [S.RECEIVED, S.AUTHENTICATED, S.PROCESSING, S.CLASSIFIED, S.DONE],
        [S.RECEIVED, S.AUTHENTICATED, S.DUPLICATE],
        [S.RECEIVED, S.REJECTED],
        [S.RECEIVED, S.AUTHENTICATED, S.PROCESSING, S.CLASSIFIED, S.PERSISTED, S.ABORTED],
    ])
    def test_valid_paths(self, path):
        for current, target in zip(path, path[1:]):
            assert is_valid_transition(current, target), f"{current} -> {target}"

    @pytest.mark.unit
    @pytest.mark.parametrize("current, target", [
        (S.RECEIVED, S.PROCESSING),
        (S.DONE, S.PROCESSING),
        (S.DUPLICATE, S.CLASSIFIED),
        (S.AUTHENTICATED, S.DONE),
    ])
    def test_invalid_transitions(self, current, target):
        assert not is_valid_transition(current, target)


class TestTracker:

    @pytest.mark.unit
    def test_history(self):
        tracker = EventStateTracker()
        tracker.advance(S.AUTHENTICATED)
        tracker.advance(S.DUPLICATE)

        assert tracker.history == [S.RECEIVED, S.AUTHENTICATED, S.DUPLICATE]
        assert tracker.state == S.DUPLICATE


class TestStepResult:

    @pytest.mark.unit
    def test_constructors(self):
        assert StepResult.succeeded("a", x=1).detail == {"x": 1}
        assert StepResult.skipped("a", "why").status == StepStatus.SKIPPED
        assert StepResult.skipped("a", "why").ok
        failed = StepResult.failed("a", "boom")
        assert not failed.ok
        assert failed.error == "boom"
