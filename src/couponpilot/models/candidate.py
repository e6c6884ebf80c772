"""Candidate codes and their per-run trial state."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator


class Candidate(BaseModel):
    """One discount code (or code-less offer) eligible for a trial.

    Candidates are immutable once fetched; the order in which the corpus
    returns them is the order in which they are tried.
    """

    model_config = ConfigDict(frozen=True)

    identifier: str
    code: str | None = None
    description: str | None = None
    source: str | None = None

    @field_validator("code")
    @classmethod
    def blank_code_is_none(cls, v: str | None) -> str | None:
        """Treat whitespace-only codes as missing."""
        if v is None:
            return None
        v = v.strip()
        return v or None

    @classmethod
    def from_code(cls, code: str, *, source: str | None = None) -> "Candidate":
        """Build a candidate from a bare code string."""
        prefix = f"{source}-" if source else ""
        return cls(identifier=f"{prefix}{code}", code=code, source=source)


class TrialState(str, Enum):
    """Lifecycle of a single candidate within one run."""

    PENDING = "pending"
    TESTING = "testing"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class TrialReason(str, Enum):
    """Why a trial resolved the way it did."""

    VISIBLE_ON_PAGE = "visible_on_page"
    NO_CODE = "no_code"
    FIELD_NOT_FOUND = "field_not_found"
    FIELD_DISAPPEARED = "field_disappeared"
    CLASSIFIER_ACCEPTED = "classifier_accepted"
    CLASSIFIER_REJECTED = "classifier_rejected"
    CLASSIFIER_FAILED = "classifier_failed"
    PAGE_ERROR = "page_error"


# Allowed trial transitions; anything else is a state machine bug.
TRIAL_TRANSITIONS: dict[TrialState, frozenset[TrialState]] = {
    TrialState.PENDING: frozenset({TrialState.TESTING}),
    TrialState.TESTING: frozenset({TrialState.ACCEPTED, TrialState.REJECTED}),
    TrialState.ACCEPTED: frozenset(),
    TrialState.REJECTED: frozenset(),
}


@dataclass
class TrialRecord:
    """Per-candidate trial bookkeeping.

    ``started_at`` / ``finished_at`` are ``time.monotonic()`` readings so
    trial intervals can be compared for overlap.
    """

    index: int
    candidate: Candidate
    state: TrialState = TrialState.TESTING
    reason: TrialReason | None = None
    detail: str = ""
    started_at: float = field(default_factory=time.monotonic)
    finished_at: float | None = None

    @property
    def is_terminal(self) -> bool:
        return self.state in (TrialState.ACCEPTED, TrialState.REJECTED)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a plain dict suitable for JSON output."""
        return {
            "index": self.index,
            "identifier": self.candidate.identifier,
            "code": self.candidate.code,
            "state": self.state.value,
            "reason": self.reason.value if self.reason else None,
            "detail": self.detail,
        }
