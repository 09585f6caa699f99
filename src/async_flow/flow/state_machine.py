"""The engine's running-state machine.

`STOPPED` is terminal. `GOING_TO_PAUSE` only exists while a task is in flight
and a pause has been requested.
"""

from __future__ import annotations

from .constants import RunningState

ALLOWED_TRANSITIONS: dict[RunningState, set[RunningState]] = {
    RunningState.RUNNING: {
        RunningState.GOING_TO_PAUSE,
        RunningState.PAUSED,
        RunningState.STOPPED,
    },
    RunningState.GOING_TO_PAUSE: {
        RunningState.PAUSED,
        RunningState.RUNNING,
        RunningState.STOPPED,
    },
    RunningState.PAUSED: {RunningState.RUNNING, RunningState.STOPPED},
    RunningState.STOPPED: set(),
}


class IllegalTransitionError(ValueError):
    pass


def can_transition(*, current: RunningState, to: RunningState) -> bool:
    return to in ALLOWED_TRANSITIONS.get(current, set())


def transition(*, current: RunningState, to: RunningState) -> RunningState:
    if not can_transition(current=current, to=to):
        raise IllegalTransitionError(f"Illegal transition: {current.value} -> {to.value}")
    return to
