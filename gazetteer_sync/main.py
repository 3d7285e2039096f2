#!/usr/bin/env python3
"""
Gazetteer Sync - command line entry point.

Syncs historical gazetteers into the local spatial store, runs the polling
scheduler and queries what has been stored.

Usage:
    gazetteer-sync init-db
    gazetteer-sync sync pleiades dare
    gazetteer-sync sync --all --force
    gazetteer-sync run
    gazetteer-sync status
    gazetteer-sync query bbox 12.3 41.8 12.6 42.0
"""

import json
import signal
import threading

import click
from loguru import logger
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table
from sqlalchemy import select

from gazetteer_sync.config import settings
from gazetteer_sync.database import SessionLocal, SyncRun, SyncState, create_all_tables, drop_all_tables
from gazetteer_sync.errors import ConfigurationError
from gazetteer_sync.orchestrator import SyncOrchestrator
from gazetteer_sync.queries import count_by_source, query_by_bbox, query_by_source, query_by_time_range
from gazetteer_sync.scheduler import Scheduler, effective_interval
from gazetteer_sync.sources.configs import load_source_configs
from gazetteer_sync.types import RunStatus, SourceName

console = Console()

SOURCE_CHOICES = [s.value for s in SourceName]

STATUS_STYLES = {
    RunStatus.COMPLETED.value: "[green]Completed[/green]",
    RunStatus.NO_CHANGE.value: "[cyan]No change[/cyan]",
    RunStatus.FAILED.value: "[red]Failed[/red]",
    RunStatus.CANCELLED.value: "[yellow]Cancelled[/yellow]",
}


def _fmt_time(value) -> str:
    return value.strftime("%Y-%m-%d %H:%M") if value else "Never"


def _load_configs():
    try:
        return load_source_configs()
    except ConfigurationError as e:
        console.print(f"[red]Configuration error: {e}[/red]")
        raise SystemExit(2)


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def cli(debug):
    """Gazetteer Sync - multi-source incremental gazetteer sync"""
    if debug:
        from gazetteer_sync.utils.logging import setup_logging
        setup_logging(level="DEBUG")


@cli.command("init-db")
@click.option("--drop", is_flag=True, help="Drop existing tables first")
def init_db(drop: bool):
    """Create the store's tables."""
    if drop:
        click.confirm("Drop all tables? This deletes every stored record.", abort=True)
        drop_all_tables()
        console.print("[yellow]Dropped all tables[/yellow]")
    create_all_tables()
    console.print("[green]Tables created[/green]")


@cli.command()
@click.argument("sources", nargs=-1, type=click.Choice(SOURCE_CHOICES))
@click.option("--all", "all_sources", is_flag=True, help="Sync every enabled source")
@click.option("--force", is_flag=True, help="Fetch even when no change is detected")
@click.option("--batch-size", type=int, default=None, help="Records per upsert transaction")
def sync(sources: tuple[str, ...], all_sources: bool, force: bool, batch_size: int | None):
    """
    Sync one or more sources now.

    SOURCES are source names (e.g. 'pleiades'); use --all for every enabled source.
    """
    if not sources and not all_sources:
        raise click.UsageError("Name at least one source or pass --all")

    configs = _load_configs()
    with SyncOrchestrator(configs=configs, batch_size=batch_size) as orchestrator:
        names = list(sources) if sources else orchestrator.enabled_sources()
        console.print(f"\n[bold blue]Gazetteer Sync[/bold blue] - {', '.join(names)}\n")

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
        ) as progress:
            progress.add_task(f"Syncing {len(names)} source(s)...", total=None)
            summaries = orchestrator.sync_many(names, force=force)

    table = Table(title="Sync Summary")
    for column in ("Source", "Status", "Seen", "Inserted", "Updated", "Unchanged", "Skipped", "Stale", "Duration"):
        table.add_column(column)

    for summary in summaries:
        duration = f"{summary.duration_seconds:.1f}s" if summary.duration_seconds is not None else "-"
        table.add_row(
            summary.source_name,
            STATUS_STYLES.get(summary.status.value, summary.status.value),
            str(summary.records_seen),
            str(summary.inserted),
            str(summary.updated),
            str(summary.unchanged),
            str(summary.skipped),
            str(summary.stale_marked),
            duration,
        )
    console.print(table)

    for summary in summaries:
        if summary.status is RunStatus.FAILED:
            console.print(f"[red]{summary.source_name}: {summary.errors[-1] if summary.errors else 'failed'}[/red]")

    if any(s.status is RunStatus.FAILED for s in summaries):
        raise SystemExit(1)


@cli.command()
@click.option("--once", is_flag=True, help="Run a single tick and wait for it")
def run(once: bool):
    """Run the polling scheduler until interrupted."""
    configs = _load_configs()
    with SyncOrchestrator(configs=configs) as orchestrator:
        scheduler = Scheduler(orchestrator)

        if once:
            futures = scheduler.tick()
            for source, future in futures.items():
                summary = future.result()
                console.print(f"{source}: {STATUS_STYLES.get(summary.status.value, summary.status.value)}")
            scheduler.shutdown()
            return

        stop_event = threading.Event()

        def _stop(signum, frame):
            logger.info(f"Received signal {signum}, stopping")
            stop_event.set()

        signal.signal(signal.SIGINT, _stop)
        signal.signal(signal.SIGTERM, _stop)
        scheduler.run_forever(stop_event)


@cli.command()
def status():
    """Show per-source sync state and record counts."""
    console.print("\n[bold blue]Gazetteer Sync - Status[/bold blue]")
    console.print(f"[dim]Store: {settings.database.safe_url}[/dim]\n")
    configs = _load_configs()
    counts = count_by_source()

    session = SessionLocal()
    try:
        states = {s.source_name: s for s in session.scalars(select(SyncState))}

        table = Table()
        for column in ("Source", "Enabled", "Records", "Stale", "Last Check", "Last Success", "Failures", "Next Interval", "Last Error"):
            table.add_column(column)

        for source_name, config in configs.items():
            state = states.get(source_name)
            failures = state.consecutive_failures if state else 0
            base = config.get("poll_interval", 0)
            interval = effective_interval(base, failures)
            count = counts.get(source_name, {"active": 0, "stale": 0})

            table.add_row(
                source_name,
                "[green]✓[/green]" if config.get("enabled", True) else "[dim]✗[/dim]",
                str(count["active"]),
                str(count["stale"]),
                _fmt_time(state.last_checked_at if state else None),
                _fmt_time(state.last_success_at if state else None),
                f"[red]{failures}[/red]" if failures else "0",
                f"{interval / 3600:.0f}h",
                (state.last_error or "")[:60] if state else "",
            )
        console.print(table)
    finally:
        session.close()


@cli.command()
def list_sources():
    """List all configured sources."""
    console.print("\n[bold blue]Available Sources[/bold blue]\n")
    configs = _load_configs()

    table = Table()
    table.add_column("ID", no_wrap=True)
    table.add_column("Name")
    table.add_column("Format")
    table.add_column("Poll")
    table.add_column("License")
    table.add_column("URL")

    for source_id, config in configs.items():
        table.add_row(
            source_id,
            config.get("name", source_id),
            config.get("format", ""),
            f"{config.get('poll_interval', 0) / 86400:g}d",
            config.get("license", ""),
            config.get("data_url", ""),
        )
    console.print(table)


@cli.command()
@click.option("--source", type=click.Choice(SOURCE_CHOICES), default=None, help="Only runs of this source")
@click.option("--limit", type=int, default=20, help="Number of runs to show")
def runs(source: str | None, limit: int):
    """Show recent sync runs."""
    session = SessionLocal()
    try:
        query = select(SyncRun).order_by(SyncRun.id.desc()).limit(limit)
        if source:
            query = query.where(SyncRun.source_name == source)

        table = Table(title="Recent Runs")
        for column in ("Source", "Status", "Started", "Seen", "+", "~", "=", "Skipped", "Stale", "Failed Stage"):
            table.add_column(column)

        for run_row in session.scalars(query):
            table.add_row(
                run_row.source_name,
                STATUS_STYLES.get(run_row.status, run_row.status),
                _fmt_time(run_row.started_at),
                str(run_row.records_seen),
                str(run_row.inserted),
                str(run_row.updated),
                str(run_row.unchanged),
                str(run_row.skipped),
                str(run_row.stale_marked),
                run_row.failed_stage or "",
            )
        console.print(table)
    finally:
        session.close()


# =============================================================================
# Queries
# =============================================================================

def _print_records(records, as_json: bool):
    if as_json:
        click.echo(json.dumps(
            [
                {
                    "source_name": r.source_name.value,
                    "source_id": r.source_id,
                    "title": r.title,
                    "geometry": r.geometry,
                    "time_range": list(r.time_range) if r.time_range else None,
                    "source_url": r.source_url,
                }
                for r in records
            ],
            ensure_ascii=False,
            indent=2,
        ))
        return

    table = Table()
    for column in ("Source", "ID", "Title", "Geometry", "Years"):
        table.add_column(column)
    for r in records:
        years = f"{r.start_year} .. {r.end_year}" if r.time_range else ""
        table.add_row(
            r.source_name.value,
            r.source_id,
            r.title[:50],
            r.geometry["type"] if r.geometry else "",
            years,
        )
    console.print(table)
    console.print(f"[dim]{len(records)} records[/dim]")


@cli.group()
def query():
    """Query stored records."""
    pass


@query.command("bbox")
@click.argument("min_lon", type=float)
@click.argument("min_lat", type=float)
@click.argument("max_lon", type=float)
@click.argument("max_lat", type=float)
@click.option("--source", type=click.Choice(SOURCE_CHOICES), default=None)
@click.option("--include-stale", is_flag=True)
@click.option("--limit", type=int, default=50)
@click.option("--json", "as_json", is_flag=True, help="Print JSON instead of a table")
def query_bbox(min_lon, min_lat, max_lon, max_lat, source, include_stale, limit, as_json):
    """Records intersecting a bounding box."""
    try:
        records = query_by_bbox(min_lon, min_lat, max_lon, max_lat, source_name=source,
                                include_stale=include_stale, limit=limit)
    except ValueError as e:
        raise click.BadParameter(str(e))
    _print_records(records, as_json)


@query.command("time")
@click.argument("start", type=int)
@click.argument("end", type=int)
@click.option("--source", type=click.Choice(SOURCE_CHOICES), default=None)
@click.option("--include-stale", is_flag=True)
@click.option("--limit", type=int, default=50)
@click.option("--json", "as_json", is_flag=True, help="Print JSON instead of a table")
def query_time(start, end, source, include_stale, limit, as_json):
    """
    Records overlapping START..END (astronomical years, 500 BC = -499).

    Put -- before negative years: query time -- -499 100
    """
    try:
        records = query_by_time_range(start, end, source_name=source, include_stale=include_stale, limit=limit)
    except ValueError as e:
        raise click.BadParameter(str(e))
    _print_records(records, as_json)


@query.command("source")
@click.argument("source", type=click.Choice(SOURCE_CHOICES))
@click.option("--include-stale", is_flag=True)
@click.option("--limit", type=int, default=50)
@click.option("--json", "as_json", is_flag=True, help="Print JSON instead of a table")
def query_source(source, include_stale, limit, as_json):
    """Records of one source."""
    _print_records(query_by_source(source, include_stale=include_stale, limit=limit), as_json)


if __name__ == "__main__":
    cli()
