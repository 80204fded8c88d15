"""Steed — queued page automation over a headless browser subprocess."""

from __future__ import annotations

try:
    from importlib.metadata import version

    __version__ = version("steed")
except Exception:
    __version__ = "0.0.0"

from steed.core.session import Chain, Session, open_session
from steed.exceptions import (
    BrowserError,
    FrameNotFoundError,
    NotSerializableError,
    SessionClosedError,
    SteedError,
    SubprocessCrashedError,
    TimedOutError,
    UsedAfterNavigationError,
)

__all__ = [
    "BrowserError",
    "Chain",
    "FrameNotFoundError",
    "NotSerializableError",
    "Session",
    "SessionClosedError",
    "SteedError",
    "SubprocessCrashedError",
    "TimedOutError",
    "UsedAfterNavigationError",
    "open_session",
]
