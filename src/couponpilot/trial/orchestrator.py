"""Coupon trial orchestrator — drives one session through detection and serial trials.

State machine::

    IDLE → DETECTING ─┬─→ NOT_CHECKOUT   (terminal, retryable)
                      ├─→ DETECT_FAILED  (terminal, retryable)
                      └─→ TESTING(0) → TESTING(1) → … ─┬─→ SUCCEEDED
                                                        └─→ ALL_REJECTED

Per candidate, in order, with exactly one candidate TESTING at a time:

    no code             → REJECTED, no page access at all
    code already shown  → ACCEPTED, interactor and classifier never called
    otherwise           → interactor, then the decision policy

A pacing delay separates trials that touched the page so one trial's
effects settle before the next begins.  Trials resolved without touching
the page (code already visible, no code) and the final trial are not
followed by a pause.  There is no per-candidate retry:
a failed attempt may already have consumed a store's one-time stacking
rule, so the only retry is a full re-run from detection.

Every transition is published on the ``EventBus`` for presenters.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Protocol

from playwright.async_api import Error as PlaywrightError

from couponpilot.browser import dom
from couponpilot.models.candidate import TrialReason, TrialState
from couponpilot.models.detection import DetectionResult, DetectionStatus
from couponpilot.models.states import RunState
from couponpilot.monitoring.event_bus import EventBus, EventType
from couponpilot.trial.policy import TrialVerdict

if TYPE_CHECKING:
    from playwright.async_api import Page

    from couponpilot.browser.interactor import FieldInteractor
    from couponpilot.models.session import Session, SessionOutcome
    from couponpilot.trial.policy import OutcomeDecisionPolicy

logger = logging.getLogger(__name__)


class Locator(Protocol):
    """Anything that can turn a markup snapshot into a ``DetectionResult``."""

    markup_limit: int

    async def detect(self, markup: str, url: str) -> DetectionResult: ...


class CouponTrialOrchestrator:
    """Runs the detection → interaction → validation pipeline for a session.

    Args:
        page: The live checkout page.
        locator: Field locator client.
        interactor: Field interactor.
        policy: Post-interaction decision policy.
        events: Event bus for presenters; a private bus is used when omitted.
        pacing_ms: Delay between trials that touched the page.
    """

    def __init__(
        self,
        page: Page,
        *,
        locator: Locator,
        interactor: FieldInteractor,
        policy: OutcomeDecisionPolicy,
        events: EventBus | None = None,
        pacing_ms: int = 2_500,
    ) -> None:
        self.page = page
        self.locator = locator
        self.interactor = interactor
        self.policy = policy
        self.events = events or EventBus()
        self.pacing_ms = pacing_ms

    async def run(self, session: Session) -> SessionOutcome:
        """Run *session* from detection to a terminal state.

        A session that already ran is reset first, so calling this again is
        the explicit "try again".
        """
        if session.run_state != RunState.IDLE:
            session.reset()
        session.run_count += 1
        self.events.session_id = session.session_id

        await self.events.emit(
            EventType.RUN_STARTED,
            {"url": self.page.url, "candidates": len(session.candidates), "run": session.run_count},
        )

        detection = await self._detect(session)
        if detection.status == DetectionStatus.NOT_CHECKOUT:
            await self._transition(session, RunState.NOT_CHECKOUT)
            return await self._finish(session)
        if detection.status != DetectionStatus.FIELD_FOUND or not detection.field_selector:
            await self._transition(session, RunState.DETECT_FAILED)
            return await self._finish(session)

        await self._transition(session, RunState.TESTING)
        last = len(session.candidates) - 1
        for index in range(len(session.candidates)):
            touched_page = await self._run_trial(session, index, detection.field_selector, detection.submit_selector)
            if touched_page and index < last:
                await asyncio.sleep(self.pacing_ms / 1000)

        accepted = any(state == TrialState.ACCEPTED for state in session.states())
        await self._transition(session, RunState.SUCCEEDED if accepted else RunState.ALL_REJECTED)
        return await self._finish(session)

    # ------------------------------------------------------------------
    # Detection
    # ------------------------------------------------------------------

    async def _detect(self, session: Session) -> DetectionResult:
        await self._transition(session, RunState.DETECTING)
        try:
            markup = await dom.capture_markup(self.page, self.locator.markup_limit)
        except PlaywrightError as e:
            logger.warning("Could not snapshot page markup: %s", e)
            detection = DetectionResult.not_found(f"Could not read page: {e}")
        else:
            detection = await self.locator.detect(markup, self.page.url)

        session.detection = detection
        logger.info(
            "Detection on %s: %s (field=%s, submit=%s) %s",
            self.page.url,
            detection.status.value,
            detection.field_selector,
            detection.submit_selector,
            detection.message,
        )
        await self.events.emit(EventType.DETECTION_COMPLETED, detection.model_dump(mode="json"))
        return detection

    # ------------------------------------------------------------------
    # Trials
    # ------------------------------------------------------------------

    async def _run_trial(self, session: Session, index: int, field_selector: str, submit_selector: str | None) -> bool:
        """Resolve candidate *index*; returns True if the page was interacted with."""
        candidate = session.candidates[index]
        session.begin_trial(index)
        await self.events.emit(
            EventType.TRIAL_STARTED,
            {"index": index, "identifier": candidate.identifier, "code": candidate.code},
        )

        touched_page = False
        if not candidate.code:
            verdict = TrialVerdict(TrialState.REJECTED, TrialReason.NO_CODE)
        else:
            try:
                verdict, touched_page = await self._trial_code(candidate.code, field_selector, submit_selector)
            except PlaywrightError as e:
                logger.warning("Page error while trying %s: %s", candidate.code, e)
                verdict, touched_page = TrialVerdict(TrialState.REJECTED, TrialReason.PAGE_ERROR, str(e)), True

        record = session.resolve_trial(index, verdict.state, verdict.reason, verdict.detail)
        logger.info(
            "Trial %d/%d %s: %s (%s)",
            index + 1,
            len(session.candidates),
            candidate.code or candidate.identifier,
            verdict.state.value,
            verdict.reason.value,
        )
        await self.events.emit(EventType.TRIAL_RESOLVED, record.to_dict())
        return touched_page

    async def _trial_code(self, code: str, field_selector: str, submit_selector: str | None) -> tuple[TrialVerdict, bool]:
        if await dom.code_visible_on_page(self.page, code):
            return TrialVerdict(TrialState.ACCEPTED, TrialReason.VISIBLE_ON_PAGE), False

        interaction = await self.interactor.apply_code(self.page, code, field_selector, submit_selector)
        if not interaction.completed:
            reason = TrialReason.PAGE_ERROR if interaction.browser_error else TrialReason.FIELD_NOT_FOUND
            return TrialVerdict(TrialState.REJECTED, reason, interaction.message), True

        verdict = await self.policy.decide(self.page, code, field_selector)
        return verdict, True

    # ------------------------------------------------------------------
    # Bookkeeping
    # ------------------------------------------------------------------

    async def _transition(self, session: Session, target: RunState) -> None:
        previous = session.run_state
        session.transition(target)
        await self.events.emit(
            EventType.STATE_CHANGED,
            {"old_state": previous.value, "new_state": target.value},
        )

    async def _finish(self, session: Session) -> SessionOutcome:
        outcome = session.outcome()
        logger.info(
            "Session %s finished %s: %d tested, %d accepted",
            session.session_id,
            outcome.terminal_status.value,
            outcome.tested_count,
            len(outcome.accepted_candidates),
        )
        await self.events.emit(EventType.RUN_COMPLETED, outcome.to_dict())
        return outcome
