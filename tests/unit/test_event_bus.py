"""Unit tests for the event bus module."""

from __future__ import annotations

import json
from io import StringIO

import pytest

from couponpilot.monitoring.event_bus import (
    Event,
    EventBus,
    EventSink,
    EventType,
    InMemorySink,
    JsonlSink,
    LoggingSink,
)


# ===================================================================
# Event model tests
# ===================================================================


class TestEvent:
    """Tests for the Event Pydantic model."""

    def test_create_event(self) -> None:
        event = Event(event_type=EventType.RUN_STARTED, session_id="abc123", data={"url": "https://example.com"})
        assert event.event_type == EventType.RUN_STARTED
        assert event.session_id == "abc123"
        assert event.data["url"] == "https://example.com"
        assert "T" in event.timestamp  # ISO format

    def test_event_to_jsonl(self) -> None:
        """to_jsonl produces valid JSON without newlines."""
        line = Event(event_type=EventType.LOG, data={"msg": "test"}).to_jsonl()
        assert "\n" not in line
        parsed = json.loads(line)
        assert parsed["event_type"] == "log"
        assert parsed["data"]["msg"] == "test"


# ===================================================================
# Sink tests
# ===================================================================


class TestSinks:
    def test_builtin_sinks_satisfy_protocol(self) -> None:
        for sink in (LoggingSink(), InMemorySink(), JsonlSink(StringIO())):
            assert isinstance(sink, EventSink)

    @pytest.mark.anyio
    async def test_jsonl_sink_writes_lines(self) -> None:
        stream = StringIO()
        bus = EventBus(session_id="s1")
        bus.add_sink(JsonlSink(stream))
        await bus.emit(EventType.TRIAL_STARTED, {"index": 0})
        await bus.emit(EventType.TRIAL_RESOLVED, {"index": 0, "state": "accepted"})

        lines = stream.getvalue().splitlines()
        assert len(lines) == 2
        assert json.loads(lines[1])["data"]["state"] == "accepted"
        assert json.loads(lines[0])["session_id"] == "s1"

    @pytest.mark.anyio
    async def test_in_memory_of_type(self) -> None:
        sink = InMemorySink()
        bus = EventBus()
        bus.add_sink(sink)
        await bus.emit(EventType.STATE_CHANGED, {"new_state": "DETECTING"})
        await bus.emit(EventType.LOG, {"msg": "x"})
        await bus.emit(EventType.STATE_CHANGED, {"new_state": "TESTING"})

        assert sink.count == 3
        assert [e.data["new_state"] for e in sink.of_type(EventType.STATE_CHANGED)] == ["DETECTING", "TESTING"]
        sink.clear()
        assert sink.count == 0

    @pytest.mark.anyio
    async def test_logging_sink(self, caplog) -> None:
        bus = EventBus(session_id="s1")
        bus.add_sink(LoggingSink())
        with caplog.at_level("DEBUG", logger="couponpilot.events"):
            await bus.emit(EventType.RUN_STARTED, {"url": "https://shop.example.com"})
        assert "run_started" in caplog.text


# ===================================================================
# EventBus tests
# ===================================================================


class TestEventBus:
    @pytest.mark.anyio
    async def test_failing_sink_does_not_stop_others(self) -> None:
        class _Broken:
            async def handle_event(self, event: Event) -> None:
                raise RuntimeError("presenter went away")

        good = InMemorySink()
        bus = EventBus()
        bus.add_sink(_Broken())
        bus.add_sink(good)
        await bus.emit(EventType.LOG, {"msg": "still delivered"})
        assert good.count == 1

    @pytest.mark.anyio
    async def test_unknown_string_type_becomes_log(self) -> None:
        sink = InMemorySink()
        bus = EventBus()
        bus.add_sink(sink)
        await bus.emit("trial_started", {"identifier": "x"})
        await bus.emit("something_else")
        assert [e.event_type for e in sink.events] == [EventType.TRIAL_STARTED, EventType.LOG]

    def test_add_remove_sink(self) -> None:
        bus = EventBus()
        sink = InMemorySink()
        bus.add_sink(sink)
        assert bus.sink_count == 1
        bus.remove_sink(sink)
        assert bus.sink_count == 0

    @pytest.mark.anyio
    async def test_snapshot_tracks_run(self) -> None:
        bus = EventBus()
        await bus.emit(EventType.RUN_STARTED, {"url": "https://shop.example.com/checkout"})
        await bus.emit(EventType.STATE_CHANGED, {"old_state": "IDLE", "new_state": "TESTING"})
        await bus.emit(EventType.TRIAL_STARTED, {"index": 0, "identifier": "honey-SAVE10"})

        snap = bus.get_snapshot()
        assert snap["url"] == "https://shop.example.com/checkout"
        assert snap["state"] == "TESTING"
        assert snap["current_candidate"] == "honey-SAVE10"

        await bus.emit(EventType.TRIAL_RESOLVED, {"index": 0})
        assert bus.get_snapshot()["current_candidate"] == ""
