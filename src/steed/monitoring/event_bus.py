"""Event bus — decouples the session engine from observers (CLI, logs, tests).

* Type-safe event types via ``EventType`` enum.
* Multiple sink pattern: a single bus emits to all registered
  ``EventSink`` implementations (logger, in-memory buffer).
* ``emit_nowait`` for synchronous callers such as transport listeners.
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Event types
# ---------------------------------------------------------------------------


class EventType(str, Enum):
    """All lifecycle events emitted by a session."""

    # Process
    PROCESS_STARTED = "process_started"
    PROCESS_CRASHED = "process_crashed"
    SESSION_CLOSED = "session_closed"

    # Command queue
    COMMAND_STARTED = "command_started"
    COMMAND_FINISHED = "command_finished"
    COMMAND_FAILED = "command_failed"

    # Page
    PAGE_EVENT = "page_event"
    TAB_CREATED = "tab_created"

    LOG = "log"


# ---------------------------------------------------------------------------
# Event payload model
# ---------------------------------------------------------------------------


class Event(BaseModel):
    """Structured event emitted by the event bus."""

    event_type: EventType
    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    session_id: str = ""
    data: dict[str, Any] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Sink protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class EventSink(Protocol):
    """Protocol for event consumers."""

    async def handle_event(self, event: Event) -> None:
        """Process a single event."""
        ...


# ---------------------------------------------------------------------------
# Built-in sinks
# ---------------------------------------------------------------------------


_EVENT_LEVELS = {
    EventType.PROCESS_CRASHED: logging.ERROR,
    EventType.COMMAND_FAILED: logging.WARNING,
}


class LoggingSink:
    """Emit events to the Python logger.

    Crashes log at ERROR and failed commands at WARNING; everything else at
    DEBUG. Attached to every session that is not given its own bus.
    """

    def __init__(self, logger_name: str = "steed.events") -> None:
        self._logger = logging.getLogger(logger_name)

    async def handle_event(self, event: Event) -> None:
        """Log the event."""
        self._logger.log(
            _EVENT_LEVELS.get(event.event_type, logging.DEBUG),
            "[%s] %s: %s",
            event.session_id or "?",
            event.event_type.value,
            json.dumps(event.data, default=str)[:200],
        )


class InMemorySink:
    """Collect events in a list — useful for testing."""

    def __init__(self) -> None:
        self.events: list[Event] = []

    async def handle_event(self, event: Event) -> None:
        """Append the event to the in-memory list."""
        self.events.append(event)

    def of_type(self, event_type: EventType) -> list[Event]:
        """Return collected events of one type, in emission order."""
        return [e for e in self.events if e.event_type == event_type]

    def clear(self) -> None:
        """Clear all collected events."""
        self.events.clear()

    @property
    def count(self) -> int:
        """Return the number of collected events."""
        return len(self.events)


# ---------------------------------------------------------------------------
# Event bus
# ---------------------------------------------------------------------------


class EventBus:
    """Central event dispatcher for one session.

    Args:
        session_id: Identifier attached to every event.
    """

    def __init__(self, session_id: str = "") -> None:
        self._session_id = session_id
        self._sinks: list[EventSink] = []
        self._background: set[asyncio.Task[None]] = set()

    def add_sink(self, sink: EventSink) -> None:
        """Register an event sink."""
        self._sinks.append(sink)

    def remove_sink(self, sink: EventSink) -> None:
        """Remove a previously registered sink."""
        self._sinks = [s for s in self._sinks if s is not sink]

    @property
    def sink_count(self) -> int:
        """Return the number of registered sinks."""
        return len(self._sinks)

    async def emit(self, event_type: EventType | str, data: dict[str, Any] | None = None) -> None:
        """Emit an event to all registered sinks.

        Sink failures are logged and never reach the emitter.
        """
        if isinstance(event_type, str):
            try:
                event_type = EventType(event_type)
            except ValueError:
                event_type = EventType.LOG

        event = Event(event_type=event_type, session_id=self._session_id, data=data or {})
        for sink in self._sinks:
            try:
                await sink.handle_event(event)
            except Exception as exc:
                logger.warning("EventBus sink error (%s): %s", type(sink).__name__, exc)

    def emit_nowait(self, event_type: EventType | str, data: dict[str, Any] | None = None) -> None:
        """Schedule an emit from synchronous code running inside the loop."""
        if not self._sinks:
            return
        task = asyncio.get_running_loop().create_task(self.emit(event_type, data))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def drain(self) -> None:
        """Wait for every scheduled ``emit_nowait`` to finish."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
