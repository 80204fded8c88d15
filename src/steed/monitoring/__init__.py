"""Session lifecycle events."""

from steed.monitoring.event_bus import Event, EventBus, EventType, InMemorySink, LoggingSink

__all__ = ["Event", "EventBus", "EventType", "InMemorySink", "LoggingSink"]
