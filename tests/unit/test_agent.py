"""Unit tests for the auto-apply agent: session ownership, retry and cancellation."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from couponpilot.agent import AutoApplyAgent
from couponpilot.exceptions import CouponPilotError
from couponpilot.models import Candidate, DetectionResult, RunState, TrialState
from couponpilot.monitoring.event_bus import EventBus, EventType, InMemorySink
from couponpilot.trial.orchestrator import CouponTrialOrchestrator
from couponpilot.trial.policy import OutcomeDecisionPolicy


class _BlockingClassifier:
    """Blocks until ``release`` is set; lets a test act on a run mid-classification."""

    def __init__(self) -> None:
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def classify(self, code: str, fragment: str) -> bool:
        self.entered.set()
        await self.release.wait()
        return True


@pytest.fixture()
def sink() -> InMemorySink:
    return InMemorySink()


@pytest.fixture()
def make_agent(interactor, make_locator, found, sink):
    def _make(page, classifier, detection: DetectionResult | None = None, **kwargs) -> AutoApplyAgent:
        bus = EventBus()
        bus.add_sink(sink)
        orch = CouponTrialOrchestrator(
            page,
            locator=make_locator(detection or found),
            interactor=interactor,
            policy=OutcomeDecisionPolicy(classifier),
            events=bus,
            pacing_ms=0,
        )
        return AutoApplyAgent(orch, **kwargs)

    return _make


def _candidates(*codes: str) -> list[Candidate]:
    return [Candidate.from_code(code) for code in codes]


class TestRun:
    @pytest.mark.anyio
    async def test_run_creates_session(self, make_agent, make_page, make_classifier) -> None:
        agent = make_agent(make_page(submit_controls=("#apply",)), make_classifier({"B": True}))
        outcome = await agent.run(_candidates("A", "B"))

        assert agent.session is not None
        assert agent.session.run_count == 1
        assert [c.code for c in outcome.accepted_candidates] == ["B"]
        assert not agent.is_running

    @pytest.mark.anyio
    async def test_each_run_gets_a_fresh_session(self, make_agent, make_page, make_classifier) -> None:
        agent = make_agent(make_page(submit_controls=("#apply",)), make_classifier())
        await agent.run(_candidates("A"))
        first = agent.session
        await agent.run(_candidates("A"))
        assert agent.session is not first


class TestRetry:
    @pytest.mark.anyio
    async def test_retry_without_session(self, make_agent, make_page, make_classifier) -> None:
        agent = make_agent(make_page(), make_classifier())
        with pytest.raises(CouponPilotError):
            await agent.retry()

    @pytest.mark.anyio
    async def test_retry_after_not_checkout(self, make_agent, make_page, make_classifier, found) -> None:
        agent = make_agent(make_page(submit_controls=("#apply",)), make_classifier({"A": True}), DetectionResult.not_checkout())
        first = await agent.run(_candidates("A"))
        assert first.terminal_status == RunState.NOT_CHECKOUT
        assert first.can_retry

        # The shopper navigated to the real checkout step.
        agent.orchestrator.locator.result = found
        second = await agent.retry()

        assert second.terminal_status == RunState.SUCCEEDED
        assert agent.session.run_count == 2
        assert agent.session.states() == [TrialState.ACCEPTED]


class TestConcurrentRuns:
    @pytest.mark.anyio
    async def test_second_run_leaves_live_session_alone(self, make_agent, make_page) -> None:
        classifier = _BlockingClassifier()
        agent = make_agent(make_page(submit_controls=("#apply",)), classifier)

        first = asyncio.create_task(agent.run(_candidates("A")))
        await classifier.entered.wait()
        live = agent.session

        with pytest.raises(CouponPilotError, match="already running"):
            await agent.run(_candidates("OTHER"))
        with pytest.raises(CouponPilotError, match="already running"):
            await agent.retry()
        assert agent.session is live

        classifier.release.set()
        outcome = await first

        assert agent.session is live
        assert agent.session.run_count == 1
        assert outcome.terminal_status == RunState.SUCCEEDED
        assert [c.code for c in outcome.accepted_candidates] == ["A"]


class TestCancellation:
    @pytest.mark.anyio
    async def test_cancel_marks_session_aborted(self, make_agent, make_page, sink) -> None:
        classifier = _BlockingClassifier()
        agent = make_agent(make_page(submit_controls=("#apply",)), classifier)

        run = asyncio.create_task(agent.run(_candidates("A", "B")))
        await classifier.entered.wait()
        assert agent.is_running

        agent.cancel()
        outcome = await run

        assert outcome.terminal_status == RunState.ABORTED
        assert agent.session.run_state == RunState.ABORTED
        assert agent.session.state_of(1) == TrialState.PENDING
        assert len(sink.of_type(EventType.RUN_ABORTED)) == 1
        assert sink.of_type(EventType.RUN_COMPLETED) == []

    @pytest.mark.anyio
    async def test_outer_cancellation_propagates(self, make_agent, make_page) -> None:
        classifier = _BlockingClassifier()
        agent = make_agent(make_page(submit_controls=("#apply",)), classifier)

        run = asyncio.create_task(agent.run(_candidates("A")))
        await classifier.entered.wait()
        run.cancel()

        with pytest.raises(asyncio.CancelledError):
            await run
        assert agent.session.run_state == RunState.ABORTED

    @pytest.mark.anyio
    async def test_aclose_releases_clients(self, make_agent, make_page, make_classifier) -> None:
        client = AsyncMock()
        agent = make_agent(make_page(), make_classifier(), owned_clients=[client])

        await agent.aclose()

        client.aclose.assert_awaited_once()
        with pytest.raises(CouponPilotError):
            await agent.run(_candidates("A"))


class TestFromSettings:
    @pytest.mark.anyio
    async def test_wires_components(self, make_page, monkeypatch) -> None:
        monkeypatch.setenv("COUPONPILOT_TRIAL__PACING_MS", "10")
        bus = EventBus()
        agent = AutoApplyAgent.from_settings(make_page(), events=bus)
        try:
            assert agent.events is bus
            assert agent.orchestrator.pacing_ms == 10
            assert agent.orchestrator.locator.markup_limit == 50_000
            assert agent.orchestrator.policy.ancestor_levels == 5
        finally:
            await agent.aclose()
