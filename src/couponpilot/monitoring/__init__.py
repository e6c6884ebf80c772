"""Run monitoring: decoupled event dispatch for presenters, JSONL streams and logs.

Usage::

    from couponpilot.monitoring.event_bus import EventBus, EventType, LoggingSink

    bus = EventBus(session_id="abc123")
    bus.add_sink(LoggingSink())
    await bus.emit(EventType.RUN_STARTED, {"url": "https://shop.example/checkout"})
"""

from couponpilot.monitoring.event_bus import (
    Event,
    EventBus,
    EventSink,
    EventType,
    InMemorySink,
    JsonlSink,
    LoggingSink,
)

__all__ = ["Event", "EventBus", "EventSink", "EventType", "InMemorySink", "JsonlSink", "LoggingSink"]
