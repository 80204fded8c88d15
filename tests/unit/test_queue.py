"""Unit tests for the command queue — ordering, failure isolation, shutdown."""

from __future__ import annotations

import asyncio
import random

import pytest

from steed.core.queue import CommandQueue
from steed.exceptions import BrowserError, SessionClosedError, SubprocessCrashedError
from steed.monitoring.event_bus import EventBus, EventType, InMemorySink


def _sleeper(log: list[int], n: int, delay: float):
    async def handler() -> int:
        await asyncio.sleep(delay)
        log.append(n)
        return n

    return handler


class TestOrdering:
    """Commands execute and resolve in submission order."""

    @pytest.mark.anyio
    async def test_results_resolve_in_submission_order(self) -> None:
        """Variable latency never reorders completion."""
        queue = CommandQueue(name="order")
        rng = random.Random(7)
        executed: list[int] = []
        resolved: list[int] = []
        futures = []
        for n in range(20):
            fut = queue.enqueue(f"cmd{n}", _sleeper(executed, n, rng.uniform(0, 0.01)))
            fut.add_done_callback(lambda f: resolved.append(f.result()))
            futures.append(fut)

        results = await asyncio.gather(*futures)

        assert results == list(range(20))
        assert executed == list(range(20))
        assert resolved == list(range(20))
        await queue.close()

    @pytest.mark.anyio
    async def test_never_runs_two_at_once(self) -> None:
        queue = CommandQueue()
        active = 0
        peak = 0

        async def handler() -> None:
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.002)
            active -= 1

        await asyncio.gather(*(queue.enqueue("x", handler) for _ in range(10)))
        assert peak == 1
        await queue.close()

    @pytest.mark.anyio
    async def test_enqueue_from_concurrent_tasks(self) -> None:
        """Submissions from several tasks are all accepted and serialized."""
        queue = CommandQueue()
        executed: list[int] = []

        async def submit(n: int):
            return await queue.enqueue(f"c{n}", _sleeper(executed, n, 0))

        results = await asyncio.gather(*(submit(n) for n in range(5)))
        assert sorted(results) == list(range(5))
        assert len(executed) == 5
        await queue.close()


class TestFailures:
    """A failing command only fails its own future."""

    @pytest.mark.anyio
    async def test_failure_does_not_abort_queue(self) -> None:
        queue = CommandQueue()
        log: list[int] = []

        async def boom() -> None:
            raise BrowserError("element_not_found", "#nope")

        first = queue.enqueue("first", _sleeper(log, 1, 0))
        bad = queue.enqueue("bad", boom)
        after = queue.enqueue("after", _sleeper(log, 2, 0))

        assert await first == 1
        with pytest.raises(BrowserError):
            await bad
        assert await after == 2
        assert not queue.closed
        await queue.close()

    @pytest.mark.anyio
    async def test_crash_fails_queued_and_later_commands(self) -> None:
        queue = CommandQueue()

        async def crashed() -> None:
            raise SubprocessCrashedError(9)

        doomed = queue.enqueue("crash", crashed)
        queued = [queue.enqueue(f"q{n}", _sleeper([], n, 0)) for n in range(3)]

        with pytest.raises(SubprocessCrashedError):
            await doomed
        for fut in queued:
            with pytest.raises(SubprocessCrashedError):
                await fut

        later = queue.enqueue("later", _sleeper([], 99, 0))
        assert later.done()
        with pytest.raises(SubprocessCrashedError) as exc_info:
            await later
        assert exc_info.value.returncode == 9
        await queue.close()

    @pytest.mark.anyio
    async def test_poison_fails_in_flight_command(self) -> None:
        queue = CommandQueue()
        started = asyncio.Event()

        async def slow() -> None:
            started.set()
            await asyncio.sleep(10)

        fut = queue.enqueue("slow", slow)
        await started.wait()
        queue.poison(SubprocessCrashedError(1))
        with pytest.raises(SubprocessCrashedError):
            await fut
        await queue.close()


class TestClose:
    """Closing fails everything still pending."""

    @pytest.mark.anyio
    async def test_close_fails_three_queued_commands(self) -> None:
        queue = CommandQueue()
        gate = asyncio.Event()

        async def blocked() -> None:
            await gate.wait()

        running = queue.enqueue("blocked", blocked)
        queued = [queue.enqueue(f"q{n}", _sleeper([], n, 0)) for n in range(3)]
        await asyncio.sleep(0)
        assert queue.pending == 4

        await queue.close()

        for fut in [running, *queued]:
            with pytest.raises(SessionClosedError):
                await fut
        assert queue.pending == 0

    @pytest.mark.anyio
    async def test_enqueue_after_close_fails_immediately(self) -> None:
        queue = CommandQueue()
        await queue.close()
        fut = queue.enqueue("late", _sleeper([], 1, 0))
        with pytest.raises(SessionClosedError):
            await fut

    @pytest.mark.anyio
    async def test_cancelled_future_skips_command(self) -> None:
        queue = CommandQueue()
        log: list[int] = []
        gate = asyncio.Event()

        async def blocked() -> None:
            await gate.wait()

        first = queue.enqueue("blocked", blocked)
        skipped = queue.enqueue("skipped", _sleeper(log, 1, 0))
        kept = queue.enqueue("kept", _sleeper(log, 2, 0))
        skipped.cancel()
        gate.set()

        await first
        assert await kept == 2
        assert log == [2]
        await queue.close()


class TestEvents:
    """Lifecycle events reach the bus."""

    @pytest.mark.anyio
    async def test_started_finished_failed_events(self) -> None:
        bus = EventBus("s1")
        sink = InMemorySink()
        bus.add_sink(sink)
        queue = CommandQueue(name="s1", bus=bus)

        async def boom() -> None:
            raise ValueError("bad")

        await queue.enqueue("ok", _sleeper([], 1, 0))
        with pytest.raises(ValueError):
            await queue.enqueue("boom", boom)

        assert [e.data["command"] for e in sink.of_type(EventType.COMMAND_STARTED)] == ["ok", "boom"]
        assert [e.data["command"] for e in sink.of_type(EventType.COMMAND_FINISHED)] == ["ok"]
        failed = sink.of_type(EventType.COMMAND_FAILED)
        assert failed[0].data["error"].startswith("ValueError")
        assert all(e.session_id == "s1" for e in sink.events)
        await queue.close()
