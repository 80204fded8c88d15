"""Polling waits with timeout and interval policy.

The first probe runs immediately, so an already-true condition never waits
a full interval. Sleeps are clipped to the deadline, so a condition that
never holds fails no earlier than the timeout and no later than one
interval after it.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from steed.core.models import WaitOutcome
from steed.exceptions import SteedError, TimedOutError

logger = logging.getLogger(__name__)

Probe = Callable[[], Awaitable[Any]]
ClosedCheck = Callable[[], SteedError | None]


def _never_closed() -> SteedError | None:
    return None


class WaitEngine:
    """Evaluates probes at a fixed cadence until they match or time out.

    Args:
        timeout_ms: Default deadline for every wait.
        interval_ms: Default poll interval.
        closed: Returns the error to raise once the owning session is
            closed, checked before every poll.
    """

    def __init__(self, *, timeout_ms: int, interval_ms: int, closed: ClosedCheck = _never_closed) -> None:
        self.timeout_ms = timeout_ms
        self.interval_ms = interval_ms
        self._closed = closed

    async def wait_for(
        self,
        probe: Probe,
        expected: Any = True,
        *,
        timeout_ms: int | None = None,
        interval_ms: int | None = None,
        description: str = "condition",
    ) -> WaitOutcome:
        """Poll *probe* until it returns *expected*.

        Raises:
            TimedOutError: When the deadline passes; carries the last value seen.
            SessionClosedError: When the session closes mid-wait.
        """
        timeout_ms = self.timeout_ms if timeout_ms is None else timeout_ms
        interval = (self.interval_ms if interval_ms is None else interval_ms) / 1000
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout_ms / 1000
        polls = 0

        while True:
            self._raise_if_closed()
            last_value = await probe()
            polls += 1
            if last_value == expected:
                logger.debug("Wait for %s satisfied after %d poll(s)", description, polls)
                return WaitOutcome.SATISFIED

            remaining = deadline - loop.time()
            if remaining <= 0:
                logger.debug("Wait for %s timed out after %d poll(s), last=%r", description, polls, last_value)
                raise TimedOutError(
                    f"Timed out after {timeout_ms}ms waiting for {description}",
                    timeout_ms=timeout_ms,
                    last_value=last_value,
                )
            await asyncio.sleep(min(interval, remaining))

    async def wait_for_selector(
        self,
        exists: Callable[[str], Awaitable[bool]],
        selector: str,
        *,
        timeout_ms: int | None = None,
    ) -> WaitOutcome:
        """Wait until *selector* matches at least one element."""

        async def probe() -> bool:
            return await exists(selector)

        return await self.wait_for(probe, True, timeout_ms=timeout_ms, description=f"selector {selector!r}")

    async def wait_for_next_page(
        self,
        generation: Callable[[], int],
        baseline: int,
        *,
        timeout_ms: int | None = None,
    ) -> WaitOutcome:
        """Wait until a page load completes after *baseline*.

        *baseline* is the load generation captured when the preceding
        command started, so a load that action triggered counts even if it
        finished before the wait began polling.
        """

        async def probe() -> bool:
            return generation() > baseline

        return await self.wait_for(probe, True, timeout_ms=timeout_ms, description="next page load")

    async def delay(self, ms: int) -> None:
        """Sleep for *ms*, waking at each interval to observe a close."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + ms / 1000
        while True:
            self._raise_if_closed()
            remaining = deadline - loop.time()
            if remaining <= 0:
                return
            await asyncio.sleep(min(self.interval_ms / 1000, remaining))

    def _raise_if_closed(self) -> None:
        error = self._closed()
        if error is not None:
            raise error
