"""CLI commands that drive a single page."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Optional

import typer
from rich.console import Console
from rich.table import Table

page_app = typer.Typer(help="Open pages and report on them.")
console = Console()


async def _fetch(
    url: str,
    *,
    wait_for: str | None,
    screenshot: Path | None,
    user_agent: str | None,
    timeout_ms: int | None,
) -> dict[str, Any]:
    from steed.core.session import open_session
    from steed.logging_setup import configure_logging
    from steed.settings import get_settings

    settings = get_settings()
    configure_logging(settings.logging)
    if timeout_ms is not None:
        settings = settings.model_copy(update={"page": settings.page.model_copy(update={"timeout_ms": timeout_ms})})

    async with open_session(settings) as session:
        chain = session.user_agent(user_agent) if user_agent else session
        await chain.open(url)
        if wait_for:
            await session.wait_for_selector(wait_for)
        report: dict[str, Any] = {
            "url": await session.url(),
            "status": await session.status(),
            "title": await session.title(),
            "frames": await session.frame_names(),
            "links": await session.count("a[href]"),
        }
        if screenshot is not None:
            report["screenshot"] = str(await session.screenshot(screenshot))
        return report


@page_app.command("fetch")
def fetch_page(
    url: str = typer.Argument(..., help="URL to open."),
    wait_for: Optional[str] = typer.Option(None, "--wait-for", "-w", help="CSS selector to wait for after loading."),
    screenshot: Optional[Path] = typer.Option(None, "--screenshot", "-s", help="Save a screenshot to this path."),
    user_agent: Optional[str] = typer.Option(None, "--user-agent", help="User agent to send."),
    timeout_ms: Optional[int] = typer.Option(None, "--timeout", help="Navigation and wait timeout in ms."),
    as_json: bool = typer.Option(False, "--json", help="Print the report as JSON."),
) -> None:
    """Open URL in a fresh browser and print a short report."""
    from steed.exceptions import SteedError

    try:
        report = asyncio.run(
            _fetch(url, wait_for=wait_for, screenshot=screenshot, user_agent=user_agent, timeout_ms=timeout_ms)
        )
    except SteedError as exc:
        console.print(f"[red]✗[/red] {type(exc).__name__}: {exc}")
        raise typer.Exit(code=1)

    if as_json:
        console.print_json(json.dumps(report, default=str))
        return

    table = Table(title=url, show_header=False)
    for key, value in report.items():
        table.add_row(key, ", ".join(value) if isinstance(value, list) else str(value))
    console.print(table)
