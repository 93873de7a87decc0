"""Swap execution state machine.

Pure: ``apply_event(state, event)`` returns the next state and a list of
effects. It performs no I/O and never calls back into the caller. The
orchestrator applies events and dispatches the effects to subscribers.

Forward-only graph (brackets are optional steps):

    idle -> validating -> ensuring_preconditions_for_route_participants
         -> checking_destination_association -> [requesting_destination_association]
         -> checking_source_allowance -> [requesting_source_allowance]
         -> building_transaction -> awaiting_signature -> broadcasting
         -> monitoring -> success | error
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional, Union

from deraswap.errors import ErrorKind


class SwapStep(str, Enum):
    """Execution steps, in forward order."""

    IDLE = "idle"
    VALIDATING = "validating"
    ENSURING_PRECONDITIONS_FOR_ROUTE_PARTICIPANTS = "ensuring_preconditions_for_route_participants"
    CHECKING_DESTINATION_ASSOCIATION = "checking_destination_association"
    REQUESTING_DESTINATION_ASSOCIATION = "requesting_destination_association"
    CHECKING_SOURCE_ALLOWANCE = "checking_source_allowance"
    REQUESTING_SOURCE_ALLOWANCE = "requesting_source_allowance"
    BUILDING_TRANSACTION = "building_transaction"
    AWAITING_SIGNATURE = "awaiting_signature"
    BROADCASTING = "broadcasting"
    MONITORING = "monitoring"
    SUCCESS = "success"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (SwapStep.SUCCESS, SwapStep.ERROR)


TRANSITIONS: dict[SwapStep, frozenset[SwapStep]] = {
    SwapStep.IDLE: frozenset({SwapStep.VALIDATING}),
    SwapStep.VALIDATING: frozenset({SwapStep.ENSURING_PRECONDITIONS_FOR_ROUTE_PARTICIPANTS}),
    SwapStep.ENSURING_PRECONDITIONS_FOR_ROUTE_PARTICIPANTS: frozenset(
        {SwapStep.CHECKING_DESTINATION_ASSOCIATION}
    ),
    SwapStep.CHECKING_DESTINATION_ASSOCIATION: frozenset(
        {SwapStep.REQUESTING_DESTINATION_ASSOCIATION, SwapStep.CHECKING_SOURCE_ALLOWANCE}
    ),
    SwapStep.REQUESTING_DESTINATION_ASSOCIATION: frozenset({SwapStep.CHECKING_SOURCE_ALLOWANCE}),
    SwapStep.CHECKING_SOURCE_ALLOWANCE: frozenset(
        {SwapStep.REQUESTING_SOURCE_ALLOWANCE, SwapStep.BUILDING_TRANSACTION}
    ),
    SwapStep.REQUESTING_SOURCE_ALLOWANCE: frozenset({SwapStep.BUILDING_TRANSACTION}),
    SwapStep.BUILDING_TRANSACTION: frozenset({SwapStep.AWAITING_SIGNATURE}),
    SwapStep.AWAITING_SIGNATURE: frozenset({SwapStep.BROADCASTING}),
    SwapStep.BROADCASTING: frozenset({SwapStep.MONITORING}),
    SwapStep.MONITORING: frozenset({SwapStep.SUCCESS}),
    SwapStep.SUCCESS: frozenset(),
    SwapStep.ERROR: frozenset(),
}

# Every non-terminal step may also fail
for _step, _targets in list(TRANSITIONS.items()):
    if not _step.is_terminal and _step != SwapStep.IDLE:
        TRANSITIONS[_step] = _targets | {SwapStep.ERROR}


class InvalidTransitionError(Exception):
    """An event asked for a move the graph does not allow."""

    def __init__(self, current: SwapStep, requested: SwapStep):
        super().__init__(f"Invalid transition: {current.value} -> {requested.value}")
        self.current = current
        self.requested = requested


@dataclass(frozen=True)
class MonitoringProgress:
    attempt: int
    max_attempts: int


@dataclass(frozen=True)
class ExecutionState:
    """Snapshot of one swap attempt. Exactly one step at a time."""

    step: SwapStep = SwapStep.IDLE
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    suggestion: Optional[str] = None
    transaction_id: Optional[str] = None
    explorer_url: Optional[str] = None
    monitoring_progress: Optional[MonitoringProgress] = None
    history: tuple[SwapStep, ...] = (SwapStep.IDLE,)

    @property
    def is_terminal(self) -> bool:
        return self.step.is_terminal

    @property
    def broadcast(self) -> bool:
        """Whether the swap transaction may have reached the network."""
        return SwapStep.BROADCASTING in self.history


# ----------------------------------------------------------------------
# Events
# ----------------------------------------------------------------------


@dataclass(frozen=True)
class StepEntered:
    step: SwapStep


@dataclass(frozen=True)
class TransactionSubmitted:
    """Broadcast accepted by the wallet. Moves to monitoring."""

    transaction_id: str
    explorer_url: Optional[str] = None


@dataclass(frozen=True)
class ProgressReported:
    attempt: int
    max_attempts: int


@dataclass(frozen=True)
class Succeeded:
    pass


@dataclass(frozen=True)
class Failed:
    message: str
    kind: ErrorKind
    suggestion: Optional[str] = None


Event = Union[StepEntered, TransactionSubmitted, ProgressReported, Succeeded, Failed]


# ----------------------------------------------------------------------
# Effects
# ----------------------------------------------------------------------


@dataclass(frozen=True)
class StateChanged:
    """Emitted for every applied event; subscribers render from ``current``."""

    previous: ExecutionState
    current: ExecutionState
    event: Event = field(compare=False)


def _move(state: ExecutionState, step: SwapStep, **changes) -> ExecutionState:
    if step not in TRANSITIONS[state.step]:
        raise InvalidTransitionError(state.step, step)
    if step.is_terminal:
        changes["monitoring_progress"] = None
    return replace(state, step=step, history=state.history + (step,), **changes)


def apply_event(state: ExecutionState, event: Event) -> tuple[ExecutionState, list[StateChanged]]:
    """Next state plus the effects to dispatch.

    Raises:
        InvalidTransitionError: For a skipped, backward or post-terminal move
    """
    if isinstance(event, StepEntered):
        new_state = _move(state, event.step)

    elif isinstance(event, TransactionSubmitted):
        new_state = _move(
            state,
            SwapStep.MONITORING,
            transaction_id=event.transaction_id,
            explorer_url=event.explorer_url,
        )

    elif isinstance(event, ProgressReported):
        if state.step != SwapStep.MONITORING:
            raise InvalidTransitionError(state.step, SwapStep.MONITORING)
        new_state = replace(
            state, monitoring_progress=MonitoringProgress(event.attempt, event.max_attempts)
        )

    elif isinstance(event, Succeeded):
        new_state = _move(state, SwapStep.SUCCESS)

    elif isinstance(event, Failed):
        new_state = _move(
            state,
            SwapStep.ERROR,
            error=event.message,
            error_kind=event.kind,
            suggestion=event.suggestion,
        )

    else:
        raise TypeError(f"Unknown event: {event!r}")

    return new_state, [StateChanged(previous=state, current=new_state, event=event)]
