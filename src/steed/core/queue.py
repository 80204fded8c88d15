"""Strictly ordered command pipeline.

Every page-affecting operation becomes a ``Command`` whose future resolves
when its handler finishes. A single worker runs handlers one at a time in
submission order. A failed command fails only its own future, except that a
dead subprocess poisons the queue: the in-flight, queued and any later
commands all fail with the same error.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from collections import deque
from typing import Any, Awaitable, Callable

from steed.core.models import Command
from steed.exceptions import SessionClosedError, SteedError, SubprocessCrashedError
from steed.monitoring.event_bus import EventBus, EventType

logger = logging.getLogger(__name__)


class CommandQueue:
    """FIFO executor for one session.

    Args:
        name: Label used in log messages and task names.
        bus: Optional event bus for command lifecycle events.
    """

    def __init__(self, *, name: str = "session", bus: EventBus | None = None) -> None:
        self._name = name
        self._bus = bus
        self._seq = itertools.count()
        self._queued: deque[Command] = deque()
        self._wakeup = asyncio.Event()
        self._worker: asyncio.Task[None] | None = None
        self._current: Command | None = None
        self._current_task: asyncio.Task[Any] | None = None
        self._poison: SteedError | None = None

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def pending(self) -> int:
        """Number of commands queued or running."""
        return len(self._queued) + (1 if self._current is not None else 0)

    @property
    def closed(self) -> bool:
        """True once the queue no longer accepts work."""
        return self._poison is not None

    @property
    def error(self) -> SteedError | None:
        """The error every new command fails with, once closed."""
        return self._poison

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def enqueue(self, name: str, handler: Callable[[], Awaitable[Any]], *args: Any) -> asyncio.Future[Any]:
        """Submit a command and return the future of its result.

        Must be called from inside the running event loop. Never blocks;
        after close or crash the returned future is already failed.
        """
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        if self._poison is not None:
            future.set_exception(self._poison)
            return future

        command = Command(name=name, handler=handler, seq=next(self._seq), future=future, args=args)
        future.add_done_callback(lambda f, c=command: self._on_future_done(c, f))
        self._queued.append(command)
        self._wakeup.set()
        if self._worker is None:
            self._worker = asyncio.create_task(self._run(), name=f"steed-queue-{self._name}")
        logger.debug("%s: queued #%d %s", self._name, command.seq, name)
        return future

    def _on_future_done(self, command: Command, future: asyncio.Future[Any]) -> None:
        # Caller cancelled a running command: stop its handler too
        if future.cancelled() and command is self._current and self._current_task is not None:
            self._current_task.cancel()

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    async def _run(self) -> None:
        while self._poison is None:
            if not self._queued:
                self._wakeup.clear()
                await self._wakeup.wait()
                continue
            command = self._queued.popleft()
            if command.future.done():
                continue
            self._current = command
            try:
                await self._execute(command)
            finally:
                self._current = None
                self._current_task = None

    async def _execute(self, command: Command) -> None:
        await self._emit(EventType.COMMAND_STARTED, command)
        task = asyncio.create_task(command.handler())
        self._current_task = task
        try:
            result = await task
        except asyncio.CancelledError:
            if not task.cancelled():
                raise
            # Handler cancelled by the caller or by poisoning; future already settled
            if not command.future.done():
                command.future.set_exception(self._poison or SessionClosedError("Command cancelled"))
            return
        except SubprocessCrashedError as exc:
            self._settle_error(command, exc)
            await self._emit(EventType.COMMAND_FAILED, command, error=exc)
            self.poison(exc)
            return
        except Exception as exc:
            self._settle_error(command, exc)
            logger.warning("%s: #%d %s failed: %s", self._name, command.seq, command.name, exc)
            await self._emit(EventType.COMMAND_FAILED, command, error=exc)
            return

        if not command.future.done():
            command.future.set_result(result)
        logger.debug("%s: #%d %s done", self._name, command.seq, command.name)
        await self._emit(EventType.COMMAND_FINISHED, command)

    @staticmethod
    def _settle_error(command: Command, exc: BaseException) -> None:
        if not command.future.done():
            command.future.set_exception(exc)

    async def _emit(self, event_type: EventType, command: Command, error: BaseException | None = None) -> None:
        if self._bus is None:
            return
        data: dict[str, Any] = {"seq": command.seq, "command": command.name}
        if error is not None:
            data["error"] = f"{type(error).__name__}: {error}"
        await self._bus.emit(event_type, data)

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    def poison(self, error: SteedError) -> None:
        """Fail every queued and in-flight command and all later ones with *error*."""
        if self._poison is not None:
            return
        self._poison = error
        failed = 0
        if self._current is not None and not self._current.future.done():
            self._current.future.set_exception(error)
            failed += 1
        while self._queued:
            command = self._queued.popleft()
            if not command.future.done():
                command.future.set_exception(error)
                failed += 1
        if self._current_task is not None:
            self._current_task.cancel()
        if failed:
            logger.info("%s: failed %d pending command(s) with %s", self._name, failed, type(error).__name__)

    async def close(self) -> None:
        """Fail pending work with ``SessionClosedError`` and stop the worker."""
        self.poison(SessionClosedError(f"Session {self._name} closed"))
        worker, self._worker = self._worker, None
        if worker is not None and not worker.done():
            worker.cancel()
            try:
                await worker
            except asyncio.CancelledError:
                pass
