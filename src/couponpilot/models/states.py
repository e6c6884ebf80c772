"""Run-level state machine for one coupon trial session."""

from enum import Enum


class RunState(str, Enum):
    """High-level states of a session run."""

    IDLE = "IDLE"
    DETECTING = "DETECTING"
    NOT_CHECKOUT = "NOT_CHECKOUT"
    DETECT_FAILED = "DETECT_FAILED"
    TESTING = "TESTING"
    SUCCEEDED = "SUCCEEDED"
    ALL_REJECTED = "ALL_REJECTED"
    ABORTED = "ABORTED"


# States that end a run (retry re-enters DETECTING via a reset)
TERMINAL_STATES = {
    RunState.NOT_CHECKOUT,
    RunState.DETECT_FAILED,
    RunState.SUCCEEDED,
    RunState.ALL_REJECTED,
    RunState.ABORTED,
}

# Detection failures carry a retry affordance
DETECTION_FAILURE_STATES = {RunState.NOT_CHECKOUT, RunState.DETECT_FAILED}

# Normal transitions (ABORTED is always valid from a non-terminal state)
STATE_TRANSITIONS: dict[RunState, list[RunState]] = {
    RunState.IDLE: [RunState.DETECTING],
    RunState.DETECTING: [RunState.NOT_CHECKOUT, RunState.DETECT_FAILED, RunState.TESTING],
    RunState.TESTING: [RunState.SUCCEEDED, RunState.ALL_REJECTED],
}
