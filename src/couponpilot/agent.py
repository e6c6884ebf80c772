"""Auto-apply agent — owns the live page, the service clients and the current session.

This is the composition point: it wires the locator, interactor,
classifier and orchestrator around one page and keeps the ``Session``
value for the lifetime of a run.  Presenters talk to it (``run``,
``retry``, ``aclose``) and listen on its event bus.

Closing the agent mid-run cancels the in-flight task.  The session is
marked ABORTED and the partial outcome is returned without an error;
responses still in flight from either service are simply dropped.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Iterable

from couponpilot.browser.interactor import FieldInteractor
from couponpilot.exceptions import CouponPilotError
from couponpilot.models.session import Session, SessionOutcome
from couponpilot.models.states import RunState
from couponpilot.monitoring.event_bus import EventBus, EventType
from couponpilot.services.classifier import OutcomeClassifierClient
from couponpilot.services.locator import FieldLocatorClient
from couponpilot.trial.orchestrator import CouponTrialOrchestrator
from couponpilot.trial.policy import OutcomeDecisionPolicy

if TYPE_CHECKING:
    from playwright.async_api import Page

    from couponpilot.models.candidate import Candidate
    from couponpilot.settings.config import Settings

logger = logging.getLogger(__name__)


class AutoApplyAgent:
    """Runs coupon trial sessions against a single checkout page.

    Args:
        orchestrator: Configured orchestrator bound to the page.
        owned_clients: Service clients closed by ``aclose()``.
    """

    def __init__(self, orchestrator: CouponTrialOrchestrator, *, owned_clients: Iterable = ()) -> None:
        self.orchestrator = orchestrator
        self._owned_clients = list(owned_clients)
        self._session: Session | None = None
        self._task: asyncio.Task[SessionOutcome] | None = None
        self._closed = False

    @classmethod
    def from_settings(
        cls,
        page: Page,
        *,
        events: EventBus | None = None,
        settings: Settings | None = None,
    ) -> "AutoApplyAgent":
        """Build an agent with service clients configured from settings."""
        if settings is None:
            from couponpilot.settings import get_settings

            settings = get_settings()

        locator = FieldLocatorClient.from_settings(settings.locator)
        classifier = OutcomeClassifierClient.from_settings(settings.classifier)
        orchestrator = CouponTrialOrchestrator(
            page,
            locator=locator,
            interactor=FieldInteractor.from_settings(settings.interactor),
            policy=OutcomeDecisionPolicy.from_settings(classifier, settings.classifier),
            events=events,
            pacing_ms=settings.trial.pacing_ms,
        )
        return cls(orchestrator, owned_clients=(locator, classifier))

    @property
    def events(self) -> EventBus:
        return self.orchestrator.events

    @property
    def session(self) -> Session | None:
        return self._session

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run(self, candidates: Iterable[Candidate]) -> SessionOutcome:
        """Start a new session over *candidates* and run it to completion.

        Raises:
            CouponPilotError: If the agent is closed or a run is in flight;
                the current session is left untouched.
        """
        self._ensure_idle()
        self._session = Session.create(candidates)
        return await self._drive(self._session)

    async def retry(self) -> SessionOutcome:
        """Re-run the current session from detection with all trial state cleared."""
        if self._session is None:
            raise CouponPilotError("Nothing to retry: no session has been run")
        self._ensure_idle()
        logger.info("Retrying session %s from detection", self._session.session_id)
        return await self._drive(self._session)

    def cancel(self) -> None:
        """Abandon the in-flight run, if any."""
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def aclose(self) -> None:
        """Cancel any in-flight run and release the service clients."""
        self._closed = True
        self.cancel()
        for client in self._owned_clients:
            await client.aclose()
        self._owned_clients.clear()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _ensure_idle(self) -> None:
        if self._closed:
            raise CouponPilotError("Agent is closed")
        if self.is_running:
            raise CouponPilotError("A session is already running")

    async def _drive(self, session: Session) -> SessionOutcome:
        self._task = asyncio.create_task(self.orchestrator.run(session))
        try:
            return await self._task
        except asyncio.CancelledError:
            if not session.is_finished:
                session.transition(RunState.ABORTED)
            await self.events.emit(EventType.RUN_ABORTED, {"session_id": session.session_id})
            logger.info("Session %s aborted", session.session_id)
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
            return session.outcome()
        finally:
            self._task = None
