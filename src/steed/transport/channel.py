"""Bidirectional request/response channel to the browser driver.

Requests are correlated to responses by integer id. Unsolicited events are
fanned out to registered listeners. When the stream ends every pending
request fails; the error kind depends on whether the close was asked for.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from typing import Any, Callable

from steed.exceptions import (
    BrowserError,
    FrameNotFoundError,
    NotSerializableError,
    ProtocolError,
    SessionClosedError,
    SteedError,
    SubprocessCrashedError,
    TimedOutError,
)
from steed.transport.framing import Event, Request, Response, encode, read_frame

logger = logging.getLogger(__name__)

EventListener = Callable[[Event], None]
LostListener = Callable[[SteedError], None]


def error_for(code: str, message: str, params: dict[str, Any] | None = None) -> SteedError:
    """Map a driver error code onto the matching exception."""
    if code == "timeout":
        return TimedOutError(message or "Driver operation timed out")
    if code == "frame_not_found":
        return FrameNotFoundError((params or {}).get("frame", message))
    if code == "not_serializable":
        return NotSerializableError(message or "Evaluated value is not serializable")
    return BrowserError(code, message)


class TransportChannel:
    """Framed JSON channel over an asyncio stream pair.

    Args:
        reader: Stream carrying driver output.
        writer: Stream carrying driver input.
        name: Label used in log messages.
    """

    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter, *, name: str = "driver") -> None:
        self._reader = reader
        self._writer = writer
        self._name = name
        self._ids = itertools.count(1)
        self._pending: dict[int, tuple[asyncio.Future[Any], dict[str, Any]]] = {}
        self._listeners: list[EventListener] = []
        self._lost_listeners: list[LostListener] = []
        self._write_lock = asyncio.Lock()
        self._read_task: asyncio.Task[None] | None = None
        self._closing = False
        self._lost: SteedError | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Begin reading frames in a background task."""
        if self._read_task is None:
            self._read_task = asyncio.create_task(self._read_loop(), name=f"steed-read-{self._name}")

    @property
    def is_open(self) -> bool:
        """True while requests can still be sent."""
        return self._lost is None and not self._closing

    async def close(self) -> None:
        """Close the write side and fail anything still pending."""
        if self._closing:
            return
        self._closing = True
        try:
            self._writer.close()
            await self._writer.wait_closed()
        except (ConnectionError, OSError) as exc:
            logger.debug("%s: error closing writer: %s", self._name, exc)
        if self._read_task is not None:
            self._read_task.cancel()
            try:
                await self._read_task
            except asyncio.CancelledError:
                pass
        self._mark_lost(SessionClosedError(f"Channel to {self._name} closed"))

    def mark_crashed(self, returncode: int | None) -> None:
        """Record an abnormal exit reported by the process supervisor."""
        self._mark_lost(SubprocessCrashedError(returncode))

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_listener(self, listener: EventListener) -> None:
        """Register a callback for driver events."""
        self._listeners.append(listener)

    def add_lost_listener(self, listener: LostListener) -> None:
        """Register a callback fired once when the channel stops working."""
        self._lost_listeners.append(listener)

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    async def request(self, method: str, params: dict[str, Any] | None = None, *, timeout_ms: int | None = None) -> Any:
        """Send a request and wait for the correlated response.

        Raises:
            SessionClosedError: If the channel is closed or the driver died.
            TimedOutError: If *timeout_ms* elapses first.
        """
        if self._lost is not None:
            raise self._lost
        if self._closing:
            raise SessionClosedError(f"Channel to {self._name} closed")

        params = params or {}
        request_id = next(self._ids)
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._pending[request_id] = (future, params)

        try:
            frame = encode(Request(id=request_id, method=method, params=params))
            async with self._write_lock:
                self._writer.write(frame)
                await self._writer.drain()
        except (ConnectionError, OSError) as exc:
            self._pending.pop(request_id, None)
            raise SubprocessCrashedError() from exc
        except ProtocolError:
            self._pending.pop(request_id, None)
            raise

        logger.debug("%s → #%d %s", self._name, request_id, method)
        try:
            if timeout_ms is None:
                return await future
            return await asyncio.wait_for(future, timeout_ms / 1000)
        except asyncio.TimeoutError as exc:
            raise TimedOutError(f"{method} timed out after {timeout_ms}ms", timeout_ms=timeout_ms) from exc
        finally:
            self._pending.pop(request_id, None)

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    async def _read_loop(self) -> None:
        while True:
            try:
                message = await read_frame(self._reader)
            except ProtocolError as exc:
                logger.error("%s: protocol error, dropping channel: %s", self._name, exc)
                self._mark_lost(SubprocessCrashedError())
                return
            except (ConnectionError, OSError) as exc:
                logger.warning("%s: stream error: %s", self._name, exc)
                message = None

            if message is None:
                if self._closing:
                    self._mark_lost(SessionClosedError(f"Channel to {self._name} closed"))
                else:
                    logger.warning("%s: stream ended unexpectedly", self._name)
                    self._mark_lost(SubprocessCrashedError())
                return

            if isinstance(message, Response):
                self._resolve(message)
            elif isinstance(message, Event):
                self._dispatch(message)
            else:
                logger.warning("%s: ignoring request-shaped message from driver: %s", self._name, message.method)

    def _resolve(self, response: Response) -> None:
        entry = self._pending.get(response.id)
        if entry is None:
            logger.debug("%s: late response #%d dropped", self._name, response.id)
            return
        future, params = entry
        if future.done():
            return
        if response.error is not None:
            future.set_exception(error_for(response.error.code, response.error.message, params))
        else:
            future.set_result(response.result)

    def _dispatch(self, event: Event) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as exc:
                logger.warning("%s: event listener error on %s: %s", self._name, event.event, exc)

    def _mark_lost(self, error: SteedError) -> None:
        if self._lost is not None:
            return
        self._lost = error
        for future, _ in list(self._pending.values()):
            if not future.done():
                future.set_exception(error)
        self._pending.clear()
        for listener in list(self._lost_listeners):
            try:
                listener(error)
            except Exception as exc:
                logger.warning("%s: lost listener error: %s", self._name, exc)
