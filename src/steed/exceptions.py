"""Steed exception hierarchy.

Every failure that reaches a caller's future is one of these, so callers can
tell a timeout from a dead browser without string matching.
"""

from __future__ import annotations

from typing import Any


class SteedError(Exception):
    """Base exception for all steed errors."""


class TimedOutError(SteedError):
    """Raised when a wait or navigation exceeds its deadline.

    Attributes:
        timeout_ms: The deadline that was exceeded.
        last_value: The last value observed by the poll, for diagnostics.
    """

    def __init__(self, message: str, *, timeout_ms: int | None = None, last_value: Any = None) -> None:
        self.timeout_ms = timeout_ms
        self.last_value = last_value
        super().__init__(message)


class FrameNotFoundError(SteedError):
    """Raised when switching to a frame name or position that does not exist."""

    def __init__(self, frame: str | int) -> None:
        self.frame = frame
        super().__init__(f"Frame not found: {frame!r}")


class NotSerializableError(SteedError):
    """Raised when an evaluated value cannot cross the page boundary."""


class SessionClosedError(SteedError):
    """Raised for commands on a session that was closed or whose browser died."""


class SubprocessCrashedError(SessionClosedError):
    """Raised when the browser subprocess terminated abnormally.

    Attributes:
        returncode: Exit status of the subprocess, if known.
    """

    def __init__(self, returncode: int | None = None) -> None:
        self.returncode = returncode
        super().__init__(f"Browser subprocess crashed (returncode={returncode})")


class UsedAfterNavigationError(SteedError):
    """Raised when a setter that must precede navigation runs after it."""

    def __init__(self, setter: str) -> None:
        self.setter = setter
        super().__init__(f"{setter}() must be called before the first open/post/put on this page")


class BrowserError(SteedError):
    """An error response reported by the browser subprocess.

    Attributes:
        code: Machine-readable error code from the driver.
    """

    def __init__(self, code: str, message: str) -> None:
        self.code = code
        super().__init__(f"[{code}] {message}")


class ProtocolError(SteedError):
    """Raised when a frame from the subprocess cannot be decoded."""


class LaunchError(SteedError):
    """Raised when the browser subprocess cannot be started."""
