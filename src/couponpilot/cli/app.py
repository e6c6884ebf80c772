"""Unified CLI entry point for couponpilot.

Config precedence: settings.default.toml -> settings.<env>.toml -> settings.local.toml -> env vars (COUPONPILOT_* with double underscores) -> CLI flags.
"""

from __future__ import annotations

import logging
import os
import sys

import typer

from couponpilot.cli.apply import apply_command
from couponpilot.cli.settings_cmd import settings_app

try:
    from importlib.metadata import version

    VERSION = version("couponpilot")
except Exception:
    VERSION = "unknown"

APP_HELP = (
    "couponpilot — find a checkout page's discount-code field and try candidate codes against it. "
    "Config precedence: settings.default.toml -> settings.local.toml -> env vars (COUPONPILOT_* with __) -> CLI flags."
)

app = typer.Typer(add_completion=True, help=APP_HELP)

app.command("apply")(apply_command)
app.add_typer(settings_app, name="settings")


def configure_logging(level: str | None = None) -> None:
    """Configure root logging for CLI runs."""
    log_level = (level or os.environ.get("COUPONPILOT_LOG_LEVEL", "WARNING")).upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.WARNING),
        format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        stream=sys.stderr,
    )
    # Quieten noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: bool = typer.Option(False, "--version", help="Show version and exit."),
    log_level: str = typer.Option(None, "--log-level", help="Logging level (default: COUPONPILOT_LOG_LEVEL or WARNING)."),
) -> None:
    """Show help when no subcommand is provided."""
    if version:
        typer.echo(f"couponpilot {VERSION}")
        raise typer.Exit()
    configure_logging(log_level)
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


if __name__ == "__main__":
    app()
