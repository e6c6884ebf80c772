"""Session value object and its computed outcome.

A ``Session`` owns everything one run needs to remember: the ordered
candidate list, the trial-state map, the detection result and the run
state.  It is created by whoever composes the locator, interactor and
orchestrator (see ``couponpilot.agent``) and handed to the orchestrator
by reference; nothing about a run lives in module-level state.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Iterable
from uuid import uuid4

from couponpilot.exceptions import InvalidTransitionError
from couponpilot.models.candidate import (
    TRIAL_TRANSITIONS,
    Candidate,
    TrialReason,
    TrialRecord,
    TrialState,
)
from couponpilot.models.detection import DetectionResult
from couponpilot.models.states import STATE_TRANSITIONS, TERMINAL_STATES, RunState


@dataclass
class SessionOutcome:
    """Final, computed result of a run."""

    accepted_candidates: list[Candidate]
    tested_count: int
    terminal_status: RunState
    detection: DetectionResult | None = None
    trials: list[TrialRecord] = field(default_factory=list)

    @property
    def message(self) -> str:
        return self.detection.message if self.detection else ""

    @property
    def can_retry(self) -> bool:
        return self.terminal_status in (RunState.NOT_CHECKOUT, RunState.DETECT_FAILED)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a plain dict suitable for JSON output."""
        return {
            "terminal_status": self.terminal_status.value,
            "tested_count": self.tested_count,
            "accepted": [c.model_dump() for c in self.accepted_candidates],
            "detection": self.detection.model_dump(mode="json") if self.detection else None,
            "trials": [t.to_dict() for t in self.trials],
        }


@dataclass
class Session:
    """One end-to-end orchestration run over an ordered candidate list."""

    candidates: tuple[Candidate, ...]
    session_id: str = field(default_factory=lambda: uuid4().hex[:12])
    run_state: RunState = RunState.IDLE
    detection: DetectionResult | None = None
    run_count: int = 0
    _records: dict[int, TrialRecord] = field(default_factory=dict, repr=False)

    @classmethod
    def create(cls, candidates: Iterable[Candidate]) -> "Session":
        return cls(candidates=tuple(candidates))

    # ------------------------------------------------------------------
    # Run state
    # ------------------------------------------------------------------

    def transition(self, target: RunState) -> None:
        """Move the run to *target*, enforcing the run state machine."""
        current = self.run_state
        if target == RunState.ABORTED and current not in TERMINAL_STATES:
            self.run_state = target
            return
        if target not in STATE_TRANSITIONS.get(current, []):
            raise InvalidTransitionError(current.value, target.value)
        self.run_state = target

    def reset(self) -> None:
        """Clear all trial state so the run can restart from detection."""
        self._records.clear()
        self.detection = None
        self.run_state = RunState.IDLE

    @property
    def is_finished(self) -> bool:
        return self.run_state in TERMINAL_STATES

    # ------------------------------------------------------------------
    # Trial state
    # ------------------------------------------------------------------

    def state_of(self, index: int) -> TrialState:
        """Return the trial state of the candidate at *index*."""
        record = self._records.get(index)
        return record.state if record else TrialState.PENDING

    def states(self) -> list[TrialState]:
        return [self.state_of(i) for i in range(len(self.candidates))]

    def record(self, index: int) -> TrialRecord | None:
        return self._records.get(index)

    @property
    def records(self) -> list[TrialRecord]:
        return [self._records[i] for i in sorted(self._records)]

    @property
    def testing(self) -> list[TrialRecord]:
        return [r for r in self._records.values() if r.state == TrialState.TESTING]

    def begin_trial(self, index: int) -> TrialRecord:
        """Mark candidate *index* as TESTING.

        Raises:
            InvalidTransitionError: If the candidate already left PENDING or
                another candidate is still being tested.
        """
        current = self.state_of(index)
        if TrialState.TESTING not in TRIAL_TRANSITIONS[current]:
            raise InvalidTransitionError(current.value, TrialState.TESTING.value)
        if self.testing:
            busy = self.testing[0]
            raise InvalidTransitionError(
                f"{busy.candidate.identifier}:{busy.state.value}", TrialState.TESTING.value
            )
        record = TrialRecord(index=index, candidate=self.candidates[index])
        self._records[index] = record
        return record

    def resolve_trial(self, index: int, state: TrialState, reason: TrialReason, detail: str = "") -> TrialRecord:
        """Move candidate *index* from TESTING to ACCEPTED or REJECTED."""
        record = self._records.get(index)
        current = record.state if record else TrialState.PENDING
        if record is None or state not in TRIAL_TRANSITIONS[current]:
            raise InvalidTransitionError(current.value, state.value)
        record.state = state
        record.reason = reason
        record.detail = detail
        record.finished_at = time.monotonic()
        return record

    # ------------------------------------------------------------------
    # Aggregation
    # ------------------------------------------------------------------

    def outcome(self) -> SessionOutcome:
        """Compute the outcome from the current trial-state map."""
        accepted = [
            self.candidates[i]
            for i in range(len(self.candidates))
            if self.state_of(i) == TrialState.ACCEPTED
        ]
        tested = sum(1 for r in self._records.values() if r.is_terminal)
        return SessionOutcome(
            accepted_candidates=accepted,
            tested_count=tested,
            terminal_status=self.run_state,
            detection=self.detection,
            trials=self.records,
        )
