"""Outcome decision policy — decides whether a submitted code was accepted.

Evaluated after a completed interaction, first match wins:

    1. Field gone            The selector no longer resolves.  Checkout
                             widgets commonly close the coupon form or
                             modal on success, so this is ACCEPTED with
                             no service call.
    2. Capture fragment      The nearest enclosing form, else the nearest
                             ancestor holding a status/alert region, else a
                             fixed number of ancestor levels up; capped.
    3. Classifier failure    Timeout, transport error or malformed answer
                             is REJECTED.  An unconfirmed trial is never
                             reported as working.
    4. Classifier verdict    Authoritative.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from couponpilot.browser import dom
from couponpilot.models.candidate import TrialReason, TrialState

if TYPE_CHECKING:
    from playwright.async_api import Page

    from couponpilot.settings.config import ClassifierSettings

logger = logging.getLogger(__name__)


class Classifier(Protocol):
    """Anything that can judge a post-submit fragment."""

    async def classify(self, code: str, fragment: str) -> bool: ...


@dataclass(frozen=True)
class TrialVerdict:
    """Resolved state of one trial plus the reason it was reached."""

    state: TrialState
    reason: TrialReason
    detail: str = ""

    @property
    def accepted(self) -> bool:
        return self.state == TrialState.ACCEPTED


class OutcomeDecisionPolicy:
    """Layered accept/reject decision for a single submitted code.

    Args:
        classifier: Outcome classifier client (or any ``Classifier``).
        ancestor_levels: How far above the field to look for a fragment root
            when there is no enclosing form.
        fragment_limit: Maximum fragment length, in characters.
    """

    def __init__(self, classifier: Classifier, *, ancestor_levels: int = 5, fragment_limit: int = 10_000) -> None:
        self.classifier = classifier
        self.ancestor_levels = ancestor_levels
        self.fragment_limit = fragment_limit

    @classmethod
    def from_settings(cls, classifier: Classifier, settings: ClassifierSettings | None = None) -> "OutcomeDecisionPolicy":
        """Create a policy from couponpilot settings."""
        if settings is None:
            from couponpilot.settings import get_settings

            settings = get_settings().classifier
        return cls(classifier, ancestor_levels=settings.ancestor_levels, fragment_limit=settings.fragment_limit)

    async def decide(self, page: Page, code: str, field_selector: str) -> TrialVerdict:
        """Resolve the trial of *code* against the current page state."""
        if not await dom.field_exists(page, field_selector):
            logger.info("Field %s disappeared after submitting %s, treating as accepted", field_selector, code)
            return TrialVerdict(TrialState.ACCEPTED, TrialReason.FIELD_DISAPPEARED)

        fragment = await dom.capture_fragment(
            page,
            field_selector,
            ancestor_levels=self.ancestor_levels,
            limit=self.fragment_limit,
        )
        if fragment is None:
            # Removed between the two probes.
            return TrialVerdict(TrialState.ACCEPTED, TrialReason.FIELD_DISAPPEARED)

        logger.debug("Classifying %s with %d-char fragment", code, len(fragment))
        try:
            is_valid = await self.classifier.classify(code, fragment)
        except Exception as e:
            logger.warning("Classifier failed for %s, rejecting: %s", code, e)
            return TrialVerdict(TrialState.REJECTED, TrialReason.CLASSIFIER_FAILED, detail=str(e))

        if is_valid:
            return TrialVerdict(TrialState.ACCEPTED, TrialReason.CLASSIFIER_ACCEPTED)
        return TrialVerdict(TrialState.REJECTED, TrialReason.CLASSIFIER_REJECTED)
