from __future__ import annotations

from enum import Enum


class DispatchState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"
    ACTION_RESOLVED = "action_resolved"
    EXECUTED = "executed"
    RESPONDED = "responded"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in {DispatchState.RESPONDED, DispatchState.ERROR}


DEFAULT_STATE_SEQUENCE: tuple[DispatchState, ...] = (
    DispatchState.UNAUTHENTICATED,
    DispatchState.AUTHENTICATED,
    DispatchState.ACTION_RESOLVED,
    DispatchState.EXECUTED,
    DispatchState.RESPONDED,
)


def is_valid_transition(current: DispatchState, new: DispatchState) -> bool:
    if current == new:
        return True
    if current.is_terminal:
        return False
    if new == DispatchState.ERROR:
        return True
    sequence = list(DEFAULT_STATE_SEQUENCE)
    try:
        current_index = sequence.index(current)
        new_index = sequence.index(new)
    except ValueError:
        return False
    return new_index == current_index + 1
