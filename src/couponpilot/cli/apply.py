"""CLI command for trialling candidate codes on a checkout page."""

from __future__ import annotations

import asyncio
import json
import sys
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from couponpilot.models.candidate import Candidate, TrialState
from couponpilot.models.session import SessionOutcome
from couponpilot.models.states import DETECTION_FAILURE_STATES

console = Console()

_STATE_STYLE = {
    TrialState.ACCEPTED: "[green]✓ accepted[/green]",
    TrialState.REJECTED: "[red]✗ rejected[/red]",
    TrialState.TESTING: "[yellow]… testing[/yellow]",
    TrialState.PENDING: "[dim]pending[/dim]",
}


def apply_command(
    url: str = typer.Argument(..., help="Checkout page URL to open."),
    codes: Optional[list[str]] = typer.Option(None, "--code", "-c", help="Candidate code (repeatable). Skips the corpus lookup."),
    store: Optional[str] = typer.Option(None, "--store", "-s", help="Store name for the corpus lookup (default: derived from URL)."),
    headless: Optional[bool] = typer.Option(None, "--headless/--headed", help="Override the configured browser mode."),
    events: bool = typer.Option(False, "--events", help="Emit JSONL events to stderr."),
    as_json: bool = typer.Option(False, "--json", help="Print the outcome as JSON instead of a table."),
) -> None:
    """Open URL, locate its discount-code field and try each candidate code in order."""
    from couponpilot.settings import get_settings

    settings = get_settings()
    if headless is not None:
        settings.browser.headless = headless

    console.print(Panel(f"[bold]Checkout:[/bold] {url}", title="couponpilot", border_style="blue"))

    try:
        outcome = asyncio.run(_run_apply(url, codes=codes or [], store=store, events=events))
    except Exception as e:
        console.print(f"[red]Run failed:[/red] {escape(str(e))}")
        raise typer.Exit(code=1) from None

    if as_json:
        typer.echo(json.dumps(outcome.to_dict(), indent=2))
    else:
        _render_outcome(outcome)

    if outcome.terminal_status in DETECTION_FAILURE_STATES:
        raise typer.Exit(code=1)


async def _run_apply(url: str, *, codes: list[str], store: str | None, events: bool) -> SessionOutcome:
    from couponpilot.agent import AutoApplyAgent
    from couponpilot.browser.launcher import open_page
    from couponpilot.monitoring.event_bus import EventBus, JsonlSink, LoggingSink
    from couponpilot.services.corpus import CouponCorpusClient, extract_domain, extract_store_name
    from couponpilot.settings import get_settings

    settings = get_settings()

    if codes:
        candidates = [Candidate.from_code(code) for code in codes]
    else:
        store_name = store or extract_store_name(extract_domain(url))
        corpus = CouponCorpusClient.from_settings(settings.corpus)
        try:
            candidates = await corpus.fetch_candidates(store_name)
        finally:
            await corpus.aclose()
        console.print(f"Found {len(candidates)} candidate(s) for [bold]{store_name}[/bold]")

    bus = EventBus()
    bus.add_sink(LoggingSink())
    if events:
        bus.add_sink(JsonlSink(sys.stderr))

    async with open_page(url, settings.browser) as page:
        agent = AutoApplyAgent.from_settings(page, events=bus, settings=settings)
        try:
            with console.status(f"Trying {len(candidates)} candidate(s)..."):
                return await agent.run(candidates)
        finally:
            await agent.aclose()


def _render_outcome(outcome: SessionOutcome) -> None:
    if outcome.terminal_status in DETECTION_FAILURE_STATES:
        console.print(f"\n[red]✗[/red] {outcome.message or 'Could not find a discount-code field.'}")
        console.print("  Open the cart or checkout step that shows the promo field, then run again.")
        return

    table = Table(title=f"Results ({outcome.terminal_status.value})")
    table.add_column("#", justify="right")
    table.add_column("Code")
    table.add_column("Result")
    table.add_column("Reason", style="dim")
    for trial in outcome.trials:
        table.add_row(
            str(trial.index + 1),
            trial.candidate.code or f"[dim]{trial.candidate.identifier}[/dim]",
            _STATE_STYLE[trial.state],
            trial.reason.value if trial.reason else "",
        )
    console.print(table)

    if outcome.accepted_candidates:
        working = ", ".join(c.code or c.identifier for c in outcome.accepted_candidates)
        console.print(f"\n[green]✓[/green] {len(outcome.accepted_candidates)} working: {working}")
    else:
        console.print(f"\n[yellow]No working codes[/yellow] ({outcome.tested_count} tried)")
