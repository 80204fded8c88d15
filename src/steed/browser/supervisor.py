"""Browser subprocess supervisor.

Launches the headless driver with flags derived from ``BrowserSettings``,
confirms it answers a ``ping`` before handing out a channel, retries failed
launches with exponential backoff, and reports abnormal exits.
"""

from __future__ import annotations

import asyncio
import logging
import shlex
from typing import Callable

from steed.exceptions import LaunchError, SteedError
from steed.settings.config import BrowserSettings
from steed.transport.channel import TransportChannel

logger = logging.getLogger(__name__)

CrashListener = Callable[[int | None], None]

_HANDSHAKE_TIMEOUT_MS = 10_000


def _flag(value: bool) -> str:
    return "true" if value else "false"


def build_argv(settings: BrowserSettings) -> list[str]:
    """Return the driver command line for *settings*."""
    argv = shlex.split(settings.executable)
    if not argv:
        raise LaunchError("browser.executable is empty")
    argv += [
        f"--load-images={_flag(settings.load_images)}",
        f"--ignore-ssl-errors={_flag(settings.ignore_ssl_errors)}",
        f"--ssl-protocol={settings.ssl_protocol}",
        f"--web-security={_flag(settings.web_security)}",
    ]
    if settings.proxy:
        argv.append(f"--proxy={settings.proxy}")
    if settings.proxy_type:
        argv.append(f"--proxy-type={settings.proxy_type}")
    if settings.proxy_auth:
        argv.append(f"--proxy-auth={settings.proxy_auth}")
    if settings.debug_port:
        argv.append(f"--remote-debugger-port={settings.debug_port}")
    if settings.cookies_file:
        argv.append(f"--cookies-file={settings.cookies_file}")
    argv += settings.extra_args
    return argv


async def _cancel(task: asyncio.Task[None] | None) -> None:
    if task is None or task.done():
        return
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass


class ProcessSupervisor:
    """Owns the lifecycle of one browser subprocess.

    Args:
        settings: Launch configuration.
    """

    def __init__(self, settings: BrowserSettings) -> None:
        self._settings = settings
        self._process: asyncio.subprocess.Process | None = None
        self._channel: TransportChannel | None = None
        self._monitor_task: asyncio.Task[None] | None = None
        self._stderr_task: asyncio.Task[None] | None = None
        self._crash_listeners: list[CrashListener] = []
        self._stopping = False

    @property
    def pid(self) -> int | None:
        """PID of the running subprocess, if any."""
        return self._process.pid if self._process else None

    @property
    def returncode(self) -> int | None:
        """Exit status once the subprocess has exited."""
        return self._process.returncode if self._process else None

    @property
    def is_running(self) -> bool:
        """True while the subprocess is alive."""
        return self._process is not None and self._process.returncode is None

    def add_crash_listener(self, listener: CrashListener) -> None:
        """Register a callback fired with the return code on abnormal exit."""
        self._crash_listeners.append(listener)

    # ------------------------------------------------------------------
    # Launch
    # ------------------------------------------------------------------

    async def start(self) -> TransportChannel:
        """Launch the driver with exponential-backoff retry.

        Returns:
            A started channel connected to the driver's stdio.

        Raises:
            LaunchError: If every attempt fails.
        """
        if self._channel is not None:
            return self._channel

        argv = build_argv(self._settings)
        attempts = self._settings.launch_retries + 1
        last_exc: Exception | None = None
        for attempt in range(1, attempts + 1):
            try:
                self._channel = await self._launch_once(argv)
                return self._channel
            except (OSError, SteedError) as exc:
                last_exc = exc
                await self._kill()
                if attempt == attempts:
                    break
                delay = min(self._settings.launch_retry_delay * (2 ** (attempt - 1)), 30.0)
                logger.warning(
                    "Driver launch failed (attempt %d/%d): %s — retrying in %.1fs",
                    attempt,
                    attempts,
                    exc,
                    delay,
                )
                await asyncio.sleep(delay)

        logger.error("Failed to launch driver after %d attempts", attempts)
        raise LaunchError(f"Could not launch {argv[0]!r}: {last_exc}") from last_exc

    async def _launch_once(self, argv: list[str]) -> TransportChannel:
        logger.debug("Launching driver: %s", " ".join(argv))
        process = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        self._process = process
        assert process.stdout is not None and process.stdin is not None
        channel = TransportChannel(process.stdout, process.stdin, name=f"driver[{process.pid}]")
        channel.start()
        self._stderr_task = asyncio.create_task(self._drain_stderr(process))

        # Handshake: the driver must answer before we hand it out
        try:
            await channel.request("ping", timeout_ms=_HANDSHAKE_TIMEOUT_MS)
        except BaseException:
            await channel.close()
            await _cancel(self._stderr_task)
            self._stderr_task = None
            raise
        self._monitor_task = asyncio.create_task(self._monitor(process, channel))
        logger.info("Driver started (pid=%s)", process.pid)
        return channel

    # ------------------------------------------------------------------
    # Monitoring
    # ------------------------------------------------------------------

    async def _monitor(self, process: asyncio.subprocess.Process, channel: TransportChannel) -> None:
        returncode = await process.wait()
        if self._stopping:
            logger.debug("Driver exited after stop (returncode=%s)", returncode)
            return
        logger.error("Driver crashed (pid=%s, returncode=%s)", process.pid, returncode)
        channel.mark_crashed(returncode)
        for listener in list(self._crash_listeners):
            try:
                listener(returncode)
            except Exception as exc:
                logger.warning("Crash listener error: %s", exc)

    async def _drain_stderr(self, process: asyncio.subprocess.Process) -> None:
        assert process.stderr is not None
        while True:
            line = await process.stderr.readline()
            if not line:
                return
            logger.debug("driver[%s] stderr: %s", process.pid, line.decode("utf-8", "replace").rstrip())

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def stop(self) -> None:
        """Ask the driver to exit, escalating to kill after the grace period."""
        self._stopping = True
        if self._channel is not None:
            await self._channel.close()
        process = self._process
        if process is not None and process.returncode is None:
            try:
                process.terminate()
                await asyncio.wait_for(process.wait(), self._settings.shutdown_grace_sec)
            except ProcessLookupError:
                pass
            except asyncio.TimeoutError:
                logger.warning("Driver did not exit within %.1fs, killing", self._settings.shutdown_grace_sec)
                await self._kill()
        for task in (self._monitor_task, self._stderr_task):
            await _cancel(task)
        logger.info("Driver stopped (returncode=%s)", self.returncode)

    async def _kill(self) -> None:
        process = self._process
        if self._channel is None and process is not None and process.stdin is not None:
            process.stdin.close()
        if process is not None and process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                pass
            await process.wait()
