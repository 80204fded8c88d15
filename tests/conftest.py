"""steed test configuration — shared fixtures for unit and integration tests."""

from __future__ import annotations

import asyncio
import base64
import sys
from io import BytesIO
from pathlib import Path
from typing import Any, Callable

import pytest
from PIL import Image

from steed.core import scripts
from steed.exceptions import SessionClosedError, SteedError, SubprocessCrashedError
from steed.transport.channel import error_for
from steed.transport.framing import Event


# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------

FIXTURES_DIR = Path(__file__).parent / "fixtures"
FAKE_DRIVER_SCRIPT = FIXTURES_DIR / "fake_driver.py"


# ---------------------------------------------------------------------------
# Async backend
# ---------------------------------------------------------------------------


@pytest.fixture()
def anyio_backend() -> str:
    """steed is asyncio-only."""
    return "asyncio"


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_settings_cache():
    """Clear the settings LRU cache between tests."""
    from steed.settings.config import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def settings():
    """Settings with short waits so timeouts resolve quickly."""
    from steed.settings.config import Settings

    return Settings(page={"timeout_ms": 300, "interval_ms": 20})


@pytest.fixture()
def driver_settings(settings):
    """Settings that launch the Python fake driver as the browser."""
    executable = f'"{sys.executable}" "{FAKE_DRIVER_SCRIPT}"'
    settings.browser.executable = executable
    settings.browser.launch_retries = 0
    settings.browser.shutdown_grace_sec = 2.0
    return settings


# ---------------------------------------------------------------------------
# In-process fake driver
# ---------------------------------------------------------------------------


def make_png(width: int = 40, height: int = 30) -> bytes:
    """A white PNG with a red 10x10 square at (left=10, top=5)."""
    img = Image.new("RGB", (width, height), "white")
    for x in range(10, 20):
        for y in range(5, 15):
            img.putpixel((x, y), (255, 0, 0))
    buf = BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


class FakeDriver:
    """Stands in for ``TransportChannel`` plus the browser behind it.

    The DOM is a mapping of selector to element properties; canned query
    scripts are answered from it. Per-method delays and failures can be
    configured to exercise ordering and error paths.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.delays: dict[str, float] = {}
        self.failures: dict[str, tuple[str, str]] = {}
        self.dom: dict[str, dict[str, Any]] = {}
        self.frame_tree: dict[str, Any] = {"name": "", "children": []}
        self.focused: list[int] = []
        self.cookie_jar: list[dict[str, Any]] = []
        self.statuses: dict[str, int] = {}
        self.page_title = ""
        self.location = "about:blank"
        self.evaluators: dict[str, Callable[..., Any]] = {}
        self.png = make_png()
        self.auto_load_event = True
        self._next_page = 1
        self._listeners: list[Callable[[Event], None]] = []
        self._lost_listeners: list[Callable[[SteedError], None]] = []
        self.lost: SteedError | None = None

    # -- channel interface -------------------------------------------------

    async def request(self, method: str, params: dict[str, Any] | None = None, *, timeout_ms: int | None = None) -> Any:
        if self.lost is not None:
            raise self.lost
        params = params or {}
        self.calls.append((method, params))
        delay = self.delays.get(method)
        if delay:
            await asyncio.sleep(delay)
        if self.lost is not None:
            raise self.lost
        if method in self.failures:
            code, message = self.failures[method]
            raise error_for(code, message, params)
        return getattr(self, f"_do_{method}")(params)

    def add_listener(self, listener: Callable[[Event], None]) -> None:
        self._listeners.append(listener)

    def add_lost_listener(self, listener: Callable[[SteedError], None]) -> None:
        self._lost_listeners.append(listener)

    async def close(self) -> None:
        self._mark_lost(SessionClosedError("channel closed"))

    # -- test controls -----------------------------------------------------

    def crash(self, returncode: int = 1) -> None:
        self._mark_lost(SubprocessCrashedError(returncode))

    def emit(self, name: str, **params: Any) -> None:
        event = Event(event=name, params=params)
        for listener in list(self._listeners):
            listener(event)

    def methods(self) -> list[str]:
        return [m for m, _ in self.calls]

    def last(self, method: str) -> dict[str, Any]:
        for m, params in reversed(self.calls):
            if m == method:
                return params
        raise AssertionError(f"{method} was never called")

    def _mark_lost(self, error: SteedError) -> None:
        if self.lost is not None:
            return
        self.lost = error
        for listener in list(self._lost_listeners):
            listener(error)

    # -- driver methods ----------------------------------------------------

    def _do_ping(self, params: dict[str, Any]) -> str:
        return "pong"

    def _do_createPage(self, params: dict[str, Any]) -> dict[str, int]:
        page_id = self._next_page
        self._next_page += 1
        return {"page": page_id}

    def _load(self, page: int, url: str) -> dict[str, Any]:
        self.location = url
        status = self.statuses.get(url, 200)
        # the real driver writes loadFinished before the navigation response
        if self.auto_load_event:
            self.emit("loadFinished", page=page, url=url, status=status)
        return {"url": url, "status": status}

    def _do_navigate(self, params: dict[str, Any]) -> dict[str, Any]:
        return self._load(params["page"], params["url"])

    def _do_back(self, params: dict[str, Any]) -> dict[str, Any]:
        return self._load(params["page"], "about:back")

    def _do_forward(self, params: dict[str, Any]) -> dict[str, Any]:
        return self._load(params["page"], "about:forward")

    def _do_reload(self, params: dict[str, Any]) -> dict[str, Any]:
        return self._load(params["page"], self.location)

    def _do_frames(self, params: dict[str, Any]) -> dict[str, Any]:
        return self.frame_tree

    def _do_focusedFrame(self, params: dict[str, Any]) -> list[int]:
        return self.focused

    def _do_cookies(self, params: dict[str, Any]) -> list[dict[str, Any]]:
        return self.cookie_jar

    def _do_render(self, params: dict[str, Any]) -> str:
        return base64.b64encode(self.png).decode("ascii")

    def _do_pdf(self, params: dict[str, Any]) -> str:
        return base64.b64encode(b"%PDF-1.4 fake").decode("ascii")

    def _noop(self, params: dict[str, Any]) -> None:
        return None

    _do_setViewport = _do_scrollTo = _do_setZoom = _do_click = _do_sendEvent = _do_upload = _do_closePage = _noop

    def _do_injectJs(self, params: dict[str, Any]) -> bool:
        return True

    def _do_includeJs(self, params: dict[str, Any]) -> bool:
        return True

    def _do_evaluate(self, params: dict[str, Any]) -> Any:
        fn, args = params["fn"], params.get("args", [])
        if fn in self.evaluators:
            return self.evaluators[fn](*args)
        el = self.dom.get(args[0]) if args else None
        if fn == scripts.TITLE:
            return self.page_title
        if fn == scripts.URL:
            return self.location
        if fn == scripts.EXISTS:
            return el is not None
        if fn == scripts.COUNT:
            return el.get("count", 1) if el is not None else 0
        if fn == scripts.VISIBLE:
            return bool(el and el.get("visible", True))
        if fn == scripts.TEXT:
            return el.get("text", "") if el else ""
        if fn == scripts.HTML:
            if not args[0]:
                return "<html></html>"
            return el.get("html", "") if el else ""
        if fn == scripts.ATTRIBUTE:
            return el.get("attrs", {}).get(args[1], "") if el else ""
        if fn == scripts.CSS_PROPERTY:
            return el.get("css", {}).get(args[1], "") if el else ""
        if fn == scripts.GET_VALUE:
            return el.get("value", "") if el else ""
        if fn == scripts.SET_VALUE:
            if el is None:
                return ""
            el["value"] = args[1]
            return args[1]
        if fn == scripts.WIDTH:
            return el.get("width", 0) if el else 0
        if fn == scripts.HEIGHT:
            return el.get("height", 0) if el else 0
        if fn == scripts.BOUNDING_BOX:
            return el.get("box") if el else None
        if fn in (scripts.FOCUS, scripts.SELECT):
            return el is not None
        if fn == scripts.CLEAR:
            return 1 if el is not None else 0
        raise AssertionError(f"unexpected script: {fn}")


@pytest.fixture()
def png() -> bytes:
    """The reference screenshot from ``make_png``."""
    return make_png()


@pytest.fixture()
def driver() -> FakeDriver:
    """A fresh in-process fake driver."""
    return FakeDriver()


@pytest.fixture()
def make_session(driver, settings):
    """Factory building a ``Session`` on top of the fake driver."""
    from steed.core.session import Session
    from steed.monitoring.event_bus import EventBus, InMemorySink

    async def factory(**overrides: Any) -> Session:
        s = settings
        if overrides:
            s = settings.model_copy(update={"page": settings.page.model_copy(update=overrides)})
        bus = EventBus("test")
        bus.add_sink(InMemorySink())
        return await Session.create(driver, s, bus=bus)  # type: ignore[arg-type]

    return factory


# ---------------------------------------------------------------------------
# Pytest markers
# ---------------------------------------------------------------------------


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: marks tests that launch a real subprocess")
    config.addinivalue_line("markers", "slow: marks tests that take more than a few seconds")
