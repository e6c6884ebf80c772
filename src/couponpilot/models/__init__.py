"""Data models for candidates, detection, trial state and sessions."""

from couponpilot.models.candidate import Candidate, TrialReason, TrialRecord, TrialState
from couponpilot.models.detection import DetectionResult, DetectionStatus
from couponpilot.models.session import Session, SessionOutcome
from couponpilot.models.states import RunState

__all__ = [
    "Candidate",
    "DetectionResult",
    "DetectionStatus",
    "RunState",
    "Session",
    "SessionOutcome",
    "TrialReason",
    "TrialRecord",
    "TrialState",
]
