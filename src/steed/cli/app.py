"""Unified CLI entry point for steed.

Config precedence: settings.default.toml -> settings.<env>.toml -> settings.local.toml -> env vars (STEED_* with double underscores) -> CLI flags.
"""

from __future__ import annotations

import typer

from steed.cli.page_cmd import page_app
from steed.cli.settings_cmd import settings_app

try:
    from importlib.metadata import version

    VERSION = version("steed")
except Exception:
    VERSION = "unknown"

APP_HELP = (
    "steed — queued page automation over a headless browser subprocess. "
    "Config precedence: settings.default.toml -> settings.local.toml -> env vars (STEED_* with __) -> CLI flags."
)

app = typer.Typer(add_completion=True, help=APP_HELP)

app.add_typer(page_app, name="page")
app.add_typer(settings_app, name="settings")


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context, version: bool = typer.Option(False, "--version", help="Show version and exit.")) -> None:
    """Show help when no subcommand is provided."""
    if version:
        typer.echo(f"steed {VERSION}")
        raise typer.Exit()
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


if __name__ == "__main__":
    app()
