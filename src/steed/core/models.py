"""Data models shared by the session, page and frame modules."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable

from pydantic import BaseModel, Field


class Viewport(BaseModel):
    """Viewport size in CSS pixels."""

    width: int = Field(gt=0)
    height: int = Field(gt=0)


class ScrollPosition(BaseModel):
    """Scroll offset from the top-left corner of the document."""

    top: int = 0
    left: int = 0


class BoundingBox(BaseModel):
    """Rectangle in page pixel coordinates, used for cropping."""

    top: float
    left: float
    width: float = Field(ge=0)
    height: float = Field(ge=0)


class Cookie(BaseModel):
    """A browser cookie as exchanged with the driver."""

    name: str
    value: str
    domain: str
    secure: bool | None = None
    expires: datetime | None = None
    expiry: int | None = None
    httponly: bool | None = None
    path: str | None = None


class Credentials(BaseModel):
    """Basic-auth user and password."""

    user: str
    password: str


class PendingConfig(BaseModel):
    """Request configuration that must be in place before navigation."""

    proxy: str | None = None
    auth: Credentials | None = None
    headers: dict[str, str] = Field(default_factory=dict)
    cookies: list[Cookie] = Field(default_factory=list)
    user_agent: str | None = None

    def to_params(self) -> dict[str, Any]:
        """Render as navigation request parameters, omitting unset values."""
        params: dict[str, Any] = {}
        if self.proxy:
            params["proxy"] = self.proxy
        if self.auth is not None:
            params["auth"] = self.auth.model_dump()
        if self.headers:
            params["headers"] = dict(self.headers)
        if self.cookies:
            params["cookies"] = [c.model_dump(mode="json", exclude_none=True) for c in self.cookies]
        if self.user_agent:
            params["userAgent"] = self.user_agent
        return params


class PageContext(BaseModel):
    """Mutable state for one tab."""

    page_id: int
    url: str = "about:blank"
    status: int | None = None
    viewport: Viewport
    zoom: float = 1.0
    scroll: ScrollPosition = Field(default_factory=ScrollPosition)
    navigated: bool = False
    load_generation: int = 0
    pending: PendingConfig = Field(default_factory=PendingConfig)


class WaitOutcome(str, Enum):
    """Result of a wait that succeeded; a timeout raises ``TimedOutError``."""

    SATISFIED = "satisfied"


@dataclass
class Command:
    """A queued page operation.

    ``seq`` is the submission position; the queue never runs a command
    before every lower ``seq`` has finished.
    """

    name: str
    handler: Callable[[], Awaitable[Any]]
    seq: int
    future: asyncio.Future[Any]
    args: tuple[Any, ...] = field(default_factory=tuple)
