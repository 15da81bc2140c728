"""
CLI interface for Session Ledger.

Provides command-line access to session cost and context window reports.
"""

import json
import sys
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

import typer
import yaml
from rich.console import Console
from rich.table import Table

from session_ledger.config.loader import DEFAULT_CONFIG, LedgerConfig, load_ledger_config
from session_ledger.config.logger import setup_logging
from session_ledger.core.aggregation import aggregate_session_cost
from session_ledger.core.context_window import estimate_context_window
from session_ledger.history.models import (
    ContextWindowUsage,
    SessionCostAggregation,
    format_token_count,
)
from session_ledger.history.reader import load_history

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1

LEVEL_STYLES = {
    "low": "green",
    "medium": "yellow",
    "high": "dark_orange",
    "critical": "red",
}


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context):
    """Session Ledger CLI."""
    setup_logging()
    if ctx.invoked_subcommand is None:
        console.print("Session Ledger - Use --help to see available commands")


def _load_config(config_path: Optional[str]) -> LedgerConfig:
    if config_path is None:
        return DEFAULT_CONFIG
    return load_ledger_config(config_path)


@app.command()
def status(
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to a YAML ledger configuration"
    )
):
    """Show the configured engines and their default models."""
    try:
        config = _load_config(config_path)
    except (FileNotFoundError, ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Error loading configuration:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    table = Table(title="Configured engines")
    table.add_column("Engine")
    table.add_column("Default model")
    table.add_column("Models", justify="right")
    table.add_column("Auto-compact buffer", justify="right")
    for engine, pricing in sorted(config.pricing.engines.items()):
        buffer = config.auto_compact_buffers.get(engine)
        table.add_row(
            engine,
            pricing.default_model,
            str(len(pricing.models)),
            format_token_count(buffer) if buffer is not None else "-",
        )
    console.print(table)
    console.print(f"Default context window: {format_token_count(config.default_window_size)}")


@app.command()
def cost(
    history_path: str = typer.Argument(..., help="Session history (JSON array or JSON Lines)"),
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to a YAML ledger configuration"
    ),
    as_json: bool = typer.Option(
        False,
        "--json",
        help="Print the aggregation as JSON"
    )
):
    """
    Reconcile a session history into billable events and totals.

    Repeated or partial emissions of the same API call are counted once.
    """
    try:
        config = _load_config(config_path)
        history = load_history(history_path)
    except (FileNotFoundError, ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    aggregation = aggregate_session_cost(history, config)

    if as_json:
        typer.echo(json.dumps(aggregation.to_dict(), indent=2))
    else:
        _display_aggregation(aggregation)
    sys.exit(EXIT_CODE_PASS)


@app.command()
def context(
    history_path: str = typer.Argument(..., help="Session history (JSON array or JSON Lines)"),
    model: Optional[str] = typer.Option(
        None,
        "--model",
        "-m",
        help="Model used for the context window size lookup"
    ),
    engine: Optional[str] = typer.Option(
        None,
        "--engine",
        "-e",
        help="Engine (claude, codex, gemini); enables the compaction projection where known"
    ),
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to a YAML ledger configuration"
    )
):
    """Show the live context window occupancy of a session."""
    try:
        config = _load_config(config_path)
        history = load_history(history_path)
    except (FileNotFoundError, ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    usage = estimate_context_window(history, model=model, engine=engine, config=config)
    _display_context_usage(usage)
    sys.exit(EXIT_CODE_PASS)


def _format_currency(amount: Decimal) -> str:
    """Format currency for display; the only place costs are rounded."""
    return f"${amount:,.4f}"


def _format_timestamp(timestamp_ms: Optional[int]) -> str:
    if timestamp_ms is None:
        return "-"
    moment = datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc)
    return moment.strftime("%Y-%m-%d %H:%M:%S")


def _display_aggregation(aggregation: SessionCostAggregation):
    """Display the reconciled ledger in a financial format."""
    console.print("\n[bold]Session Cost Summary[/bold]")
    console.print("-" * 40)

    if not aggregation.events:
        console.print("\n[dim]No billable usage found in this session.[/]")
        return

    table = Table()
    table.add_column("#", justify="right")
    table.add_column("Time")
    table.add_column("Engine")
    table.add_column("Model")
    table.add_column("Input", justify="right")
    table.add_column("Output", justify="right")
    table.add_column("Cache write", justify="right")
    table.add_column("Cache read", justify="right")
    table.add_column("Cost", justify="right")

    for position, event in enumerate(aggregation.events, start=1):
        model = event.model + (" [dim](default rate)[/]" if event.pricing_fallback else "")
        table.add_row(
            str(position),
            _format_timestamp(event.timestamp_ms),
            event.engine,
            model,
            f"{event.usage.input_tokens:,}",
            f"{event.usage.output_tokens:,}",
            f"{event.usage.cache_creation_tokens:,}",
            f"{event.usage.cache_read_tokens:,}",
            _format_currency(event.cost),
        )
    console.print(table)

    totals = aggregation.totals
    console.print(f"\nBillable events: {aggregation.event_count}")
    console.print(f"Total tokens: {totals.total_tokens:,}")
    console.print(f"Input / output: {totals.input_tokens:,} / {totals.output_tokens:,}")
    console.print(f"Cache write / read: {totals.cache_write_tokens:,} / {totals.cache_read_tokens:,}")
    console.print(f"[bold]Total cost:[/bold] {_format_currency(totals.total_cost)}")


def _display_context_usage(usage: ContextWindowUsage):
    """Display the context window snapshot and compaction projection."""
    console.print("\n[bold]Context Window Usage[/bold]")
    console.print("-" * 40)

    if not usage.has_data:
        console.print("\n[dim]No usage data found in this session.[/]")
        return

    style = LEVEL_STYLES[usage.level.value]
    console.print(f"Usage: [{style}]{usage.formatted_percentage}[/] ({usage.level.value})")
    console.print(f"Tokens: {usage.formatted_tokens}")
    console.print(f"Input tokens: {usage.breakdown.input_tokens:,}")
    if usage.breakdown.cache_creation_tokens > 0:
        console.print(f"Cache creation: {usage.breakdown.cache_creation_tokens:,}")
    if usage.breakdown.cache_read_tokens > 0:
        console.print(f"Cache read: {usage.breakdown.cache_read_tokens:,}")
    console.print(f"Output tokens: {usage.breakdown.output_tokens:,}")

    compaction = usage.compaction
    if compaction is None:
        return

    console.print("\n[bold]Auto-compact[/bold]")
    console.print(f"Buffer: {format_token_count(compaction.buffer)}")
    console.print(f"Threshold: {format_token_count(compaction.threshold)}")
    if compaction.will_trigger_compact:
        console.print("[yellow]Compaction threshold reached[/]")
    else:
        until = format_token_count(compaction.tokens_until_compact)
        note = " [yellow](near threshold)[/]" if compaction.near_compact else ""
        console.print(f"Until compaction: {until}{note}")


if __name__ == "__main__":
    app()
