"""CLI commands for inspecting and validating steed settings."""

from __future__ import annotations

import json

import typer
from rich.console import Console

settings_app = typer.Typer(help="Inspect and validate steed configuration.")
console = Console()


@settings_app.command("show")
def show_settings() -> None:
    """Display the currently resolved settings."""
    from steed.settings import get_settings

    settings = get_settings()
    console.print_json(json.dumps(settings.model_dump(mode="json"), indent=2, default=str))


@settings_app.command("validate")
def validate_settings() -> None:
    """Validate settings and report any issues."""
    from steed.browser.supervisor import build_argv
    from steed.settings import get_settings

    try:
        settings = get_settings()
        argv = build_argv(settings.browser)
        console.print("[green]✓[/green] Settings are valid.")
        console.print(f"  Environment: {settings.env}")
        console.print(f"  Driver command: {' '.join(argv)}")
        console.print(f"  Wait timeout / interval: {settings.page.timeout_ms}ms / {settings.page.interval_ms}ms")
    except Exception as e:
        console.print(f"[red]✗[/red] Settings validation failed: {e}")
        raise typer.Exit(code=1)
