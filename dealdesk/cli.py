"""
DealDesk CLI - Diagnostics Commands

Inspect and maintain the resilience state of the data access layer:
capability probes against the configured store, capability flags,
telemetry counters and the durable critical log.

Counters and flags are session-scoped at runtime; the CLI works on the
durable SQLite mirror (restore on entry, persist on change).
"""

import asyncio
import json
import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from dealdesk.capabilities import Capability, CapabilityState
from dealdesk.config import DealDeskConfig, load_config
from dealdesk.exceptions import ConfigError
from dealdesk.logging import get_config
from dealdesk.remote.client import RestClient
from dealdesk.remote.health import ProbeReport, probe_capabilities
from dealdesk.services import ResilienceServices
from dealdesk.storage import MemoryStorage, SqliteStorage

logger = logging.getLogger(__name__)
console = Console()

# Durable key holding the flags seen by the last `dealdesk probe`
CAPABILITY_SNAPSHOT_KEY = "capabilities_lastProbe"

app = typer.Typer(
    name="dealdesk",
    help="Diagnostics for the capability-aware DealDesk data access layer",
    add_completion=False,
)
telemetry_app = typer.Typer(help="Show, export, import or reset fallback telemetry")
app.add_typer(telemetry_app, name="telemetry")


@app.callback()
def callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
) -> None:
    """DealDesk diagnostics."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


def _load_config() -> DealDeskConfig:
    try:
        return load_config()
    except ConfigError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(1)


def _open_services(durable: SqliteStorage) -> ResilienceServices:
    services = ResilienceServices(session=MemoryStorage(), durable=durable, log_config=get_config())
    services.telemetry.restore()
    snapshot = durable.get(CAPABILITY_SNAPSHOT_KEY)
    if snapshot:
        services.capabilities.import_all(snapshot)
    return services


def _make_client(config: DealDeskConfig) -> RestClient:
    return RestClient.from_config(config)


def _state_label(state: CapabilityState) -> str:
    return {
        CapabilityState.CONFIRMED: "[green]available[/green]",
        CapabilityState.DEGRADED: "[red]degraded[/red]",
    }.get(state, "[dim]unknown[/dim]")


async def _run_probe(config: DealDeskConfig, services: ResilienceServices) -> ProbeReport:
    async with _make_client(config) as client:
        return await probe_capabilities(client, services.capabilities)


@app.command()
def probe(
    as_json: bool = typer.Option(False, "--json", help="Print the report as JSON"),
) -> None:
    """Probe the remote store for every optional schema feature."""
    config = _load_config()

    with SqliteStorage(config.state_db_path) as durable:
        services = _open_services(durable)
        try:
            if as_json:
                report = asyncio.run(_run_probe(config, services))
            else:
                with console.status("[bold blue]Probing remote schema...[/bold blue]"):
                    report = asyncio.run(_run_probe(config, services))
        except ConfigError as e:
            console.print(f"[red]Configuration error:[/red] {e}")
            raise typer.Exit(1)

        durable.set(CAPABILITY_SNAPSHOT_KEY, json.dumps(services.capabilities.export_all()))

    if as_json:
        typer.echo(json.dumps(report.to_dict(), indent=2))
    else:
        table = Table(show_header=True, header_style="bold")
        table.add_column("Check", style="cyan")
        table.add_column("Status")
        table.add_column("Classification", style="dim")
        table.add_column("Detail")

        for check in report.checks:
            status = "[green]ok[/green]" if check.ok else "[red]unavailable[/red]"
            detail = check.error or ""
            if check.hint:
                detail = f"{detail}\n[yellow]{check.hint}[/yellow]"
            table.add_row(check.name, status, check.classification or "-", detail)

        console.print(table)

    if not report.healthy:
        raise typer.Exit(1)


@app.command()
def capabilities(
    reset: bool = typer.Option(False, "--reset", help="Forget flags from the last probe"),
) -> None:
    """Show capability flags recorded by the last probe."""
    config = _load_config()

    with SqliteStorage(config.state_db_path) as durable:
        if reset:
            durable.remove(CAPABILITY_SNAPSHOT_KEY)
            console.print("[green]Capability flags reset to unknown[/green]")
            return
        services = _open_services(durable)

    table = Table(show_header=True, header_style="bold")
    table.add_column("Capability", style="cyan")
    table.add_column("State")

    for name in Capability.ALL:
        table.add_row(name, _state_label(services.capabilities.get(name)))

    console.print(table)


@telemetry_app.command("show")
def telemetry_show(
    as_json: bool = typer.Option(False, "--json", help="Print the summary as JSON"),
) -> None:
    """Show fallback counters."""
    config = _load_config()

    with SqliteStorage(config.state_db_path) as durable:
        summary = _open_services(durable).telemetry.get_summary()

    if as_json:
        typer.echo(json.dumps(summary, indent=2))
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Counter", style="cyan")
    table.add_column("Count", justify="right")
    for name, count in summary["counters"].items():
        style = "yellow" if count else "dim"
        table.add_row(name, f"[{style}]{count}[/{style}]")
    console.print(table)

    last_reset = summary["last_reset_at"] or "never"
    console.print(f"[dim]Storage: {summary['storage_type']} | Last reset: {last_reset}[/dim]")


@telemetry_app.command("export")
def telemetry_export(
    output: Path = typer.Option(None, "--output", "-o", help="Write to file instead of stdout"),
) -> None:
    """Export counters as a {timestamp, counters} JSON envelope."""
    config = _load_config()

    with SqliteStorage(config.state_db_path) as durable:
        payload = _open_services(durable).telemetry.export()

    if output:
        output.write_text(payload)
        console.print(f"[green]Telemetry exported to {output}[/green]")
    else:
        typer.echo(payload)


@telemetry_app.command("import")
def telemetry_import(
    source: Path = typer.Argument(..., help="JSON file produced by `telemetry export`"),
) -> None:
    """Import counters; the file is applied entirely or not at all."""
    config = _load_config()

    try:
        payload = source.read_text()
    except OSError as e:
        console.print(f"[red]Cannot read {source}:[/red] {e}")
        raise typer.Exit(1)

    with SqliteStorage(config.state_db_path) as durable:
        telemetry = _open_services(durable).telemetry
        if not telemetry.import_(payload):
            console.print("[red]Rejected:[/red] not a valid telemetry export")
            raise typer.Exit(1)
        telemetry.persist()

    console.print("[green]Telemetry imported[/green]")


@telemetry_app.command("reset")
def telemetry_reset() -> None:
    """Zero every counter and stamp the reset time."""
    config = _load_config()

    with SqliteStorage(config.state_db_path) as durable:
        telemetry = _open_services(durable).telemetry
        telemetry.reset_all()
        telemetry.persist()

    console.print("[green]Telemetry reset[/green]")


@app.command()
def logs(
    tail: int = typer.Option(20, "--tail", "-n", help="Show last N entries"),
    clear: bool = typer.Option(False, "--clear", help="Clear the durable critical log"),
    as_json: bool = typer.Option(False, "--json", help="Print entries as JSON"),
    stats: bool = typer.Option(False, "--stats", help="Show counts by level and category"),
) -> None:
    """View the durable error/critical log."""
    config = _load_config()

    with SqliteStorage(config.state_db_path) as durable:
        slog = _open_services(durable).logger
        if clear:
            slog.clear_critical_logs()
            console.print("[green]Critical log cleared[/green]")
            return
        entries = slog.get_critical_logs()

    if stats:
        _print_log_stats(entries, as_json)
        return

    if as_json:
        typer.echo(json.dumps(entries[-tail:], indent=2))
        return

    if not entries:
        console.print("[dim]No critical log entries[/dim]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Time", style="dim", width=20)
    table.add_column("Level", width=8)
    table.add_column("Category", style="cyan")
    table.add_column("Message")

    for entry in entries[-tail:]:
        level = entry.get("level", "")
        color = "red" if level == "error" else "bold red"
        table.add_row(
            str(entry.get("timestamp", ""))[:19],
            f"[{color}]{level}[/{color}]",
            entry.get("category", ""),
            entry.get("message", ""),
        )

    console.print(
        Panel(table, title=f"[bold]Critical log ({len(entries)} entries)[/bold]", border_style="red")
    )


def _print_log_stats(entries: list[dict], as_json: bool) -> None:
    by_level: dict[str, int] = {}
    by_category: dict[str, int] = {}
    for entry in entries:
        level = entry.get("level", "")
        category = entry.get("category", "")
        by_level[level] = by_level.get(level, 0) + 1
        by_category[category] = by_category.get(category, 0) + 1

    if as_json:
        payload = {"total": len(entries), "by_level": by_level, "by_category": by_category}
        typer.echo(json.dumps(payload, indent=2))
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Group", style="dim")
    table.add_column("Name", style="cyan")
    table.add_column("Count", justify="right")
    for name, count in sorted(by_level.items()):
        table.add_row("level", name, str(count))
    for name, count in sorted(by_category.items()):
        table.add_row("category", name, str(count))
    console.print(table)
    console.print(f"[dim]Total: {len(entries)}[/dim]")


def run() -> None:
    """Entry point wrapper that invokes the Typer app."""
    app()


if __name__ == "__main__":
    run()
