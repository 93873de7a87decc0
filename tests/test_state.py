"""Tests for the swap execution state machine."""

import pytest

from deraswap.errors import ErrorKind
from deraswap.swap.state import (
    ExecutionState,
    Failed,
    InvalidTransitionError,
    ProgressReported,
    StateChanged,
    StepEntered,
    Succeeded,
    SwapStep,
    TransactionSubmitted,
    apply_event,
)

HAPPY_PATH = [
    SwapStep.VALIDATING,
    SwapStep.ENSURING_PRECONDITIONS_FOR_ROUTE_PARTICIPANTS,
    SwapStep.CHECKING_DESTINATION_ASSOCIATION,
    SwapStep.CHECKING_SOURCE_ALLOWANCE,
    SwapStep.BUILDING_TRANSACTION,
    SwapStep.AWAITING_SIGNATURE,
    SwapStep.BROADCASTING,
]


def _walk(steps, state=None):
    state = state or ExecutionState()
    for step in steps:
        state, _ = apply_event(state, StepEntered(step))
    return state


class TestTransitions:
    """Forward-only step graph."""

    def test_happy_path(self):
        """Test the full forward path through to success."""
        state = _walk(HAPPY_PATH)
        state, _ = apply_event(state, TransactionSubmitted("0.0.1001@1700000000.000000000"))
        state, _ = apply_event(state, Succeeded())

        assert state.step == SwapStep.SUCCESS
        assert state.is_terminal
        assert state.history == (SwapStep.IDLE, *HAPPY_PATH, SwapStep.MONITORING, SwapStep.SUCCESS)

    def test_optional_request_steps(self):
        """Test both request steps slot in after their checks."""
        state = _walk(
            [
                SwapStep.VALIDATING,
                SwapStep.ENSURING_PRECONDITIONS_FOR_ROUTE_PARTICIPANTS,
                SwapStep.CHECKING_DESTINATION_ASSOCIATION,
                SwapStep.REQUESTING_DESTINATION_ASSOCIATION,
                SwapStep.CHECKING_SOURCE_ALLOWANCE,
                SwapStep.REQUESTING_SOURCE_ALLOWANCE,
                SwapStep.BUILDING_TRANSACTION,
            ]
        )

        assert state.step == SwapStep.BUILDING_TRANSACTION

    def test_skipping_is_rejected(self):
        """Test jumping ahead raises."""
        with pytest.raises(InvalidTransitionError) as exc_info:
            apply_event(ExecutionState(), StepEntered(SwapStep.BUILDING_TRANSACTION))

        assert exc_info.value.current == SwapStep.IDLE
        assert exc_info.value.requested == SwapStep.BUILDING_TRANSACTION

    def test_backwards_is_rejected(self):
        """Test returning to an earlier step raises."""
        state = _walk(HAPPY_PATH[:3])

        with pytest.raises(InvalidTransitionError):
            apply_event(state, StepEntered(SwapStep.VALIDATING))

    def test_terminal_states_are_final(self):
        """Test nothing leaves success or error."""
        state = _walk(HAPPY_PATH[:1])
        state, _ = apply_event(state, Failed("bad", ErrorKind.VALIDATION))

        with pytest.raises(InvalidTransitionError):
            apply_event(state, StepEntered(SwapStep.ENSURING_PRECONDITIONS_FOR_ROUTE_PARTICIPANTS))
        with pytest.raises(InvalidTransitionError):
            apply_event(state, Failed("again", ErrorKind.NETWORK))

    def test_idle_cannot_fail(self):
        """Test an attempt must start before it can fail."""
        with pytest.raises(InvalidTransitionError):
            apply_event(ExecutionState(), Failed("bad", ErrorKind.NETWORK))

    def test_monitoring_only_reached_by_submission(self):
        """Test broadcasting cannot move to monitoring without a transaction ID."""
        state = _walk(HAPPY_PATH)

        with pytest.raises(InvalidTransitionError):
            apply_event(state, Succeeded())


class TestEventsAndEffects:
    """Event payloads and emitted effects."""

    def test_effect_carries_previous_and_current(self):
        """Test every event yields one StateChanged with both snapshots."""
        state = ExecutionState()

        new_state, effects = apply_event(state, StepEntered(SwapStep.VALIDATING))

        assert effects == [StateChanged(previous=state, current=new_state, event=None)]
        assert effects[0].previous.step == SwapStep.IDLE
        assert effects[0].current.step == SwapStep.VALIDATING
        assert state.step == SwapStep.IDLE

    def test_submission_records_transaction(self):
        """Test the transaction ID and explorer link are stored on submission."""
        state = _walk(HAPPY_PATH)

        state, _ = apply_event(
            state, TransactionSubmitted("0.0.1001@1.0", "https://hashscan.io/mainnet/transaction/x")
        )

        assert state.step == SwapStep.MONITORING
        assert state.transaction_id == "0.0.1001@1.0"
        assert state.explorer_url.endswith("/transaction/x")
        assert state.broadcast

    def test_progress_only_while_monitoring(self):
        """Test progress updates are rejected outside monitoring."""
        state = _walk(HAPPY_PATH)

        with pytest.raises(InvalidTransitionError):
            apply_event(state, ProgressReported(1, 12))

    def test_progress_cleared_on_terminal(self):
        """Test the progress counter does not survive a terminal state."""
        state = _walk(HAPPY_PATH)
        state, _ = apply_event(state, TransactionSubmitted("0.0.1001@1.0"))
        state, _ = apply_event(state, ProgressReported(3, 12))

        assert state.monitoring_progress.attempt == 3
        assert state.step == SwapStep.MONITORING

        state, _ = apply_event(state, Failed("unknown", ErrorKind.MONITORING_TIMEOUT))

        assert state.monitoring_progress is None
        assert state.error_kind == ErrorKind.MONITORING_TIMEOUT
        assert state.transaction_id == "0.0.1001@1.0"

    def test_failure_keeps_message_and_suggestion(self):
        """Test the error kind, message and suggestion are preserved."""
        state = _walk(HAPPY_PATH[:2])

        state, _ = apply_event(
            state, Failed("No association", ErrorKind.PRECONDITION, suggestion="Try again")
        )

        assert state.step == SwapStep.ERROR
        assert state.error == "No association"
        assert state.suggestion == "Try again"
        assert not state.broadcast

    def test_unknown_event(self):
        """Test a non-event object raises TypeError."""
        with pytest.raises(TypeError):
            apply_event(ExecutionState(), object())
