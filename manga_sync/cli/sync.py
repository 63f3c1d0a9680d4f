"""
Sync CLI Commands
=================

CLI commands for running syncs and managing sources, jobs, the sync
schedule and the review queue.
"""

from __future__ import annotations

import asyncio
from typing import Optional

import typer
from pydantic import ValidationError
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from manga_sync.core.enums import ApprovalStatus, JobStatus, ScheduleInterval
from manga_sync.core.schema import ScheduleConfig, SyncJob
from manga_sync.ingestion.exceptions import (
    JobNotFoundError,
    JobStateError,
    SourceNotFoundError,
    SyncConflictError,
)
from manga_sync.services.admin_service import AdminService

console = Console()
sync_app = typer.Typer(help="Sync pipeline commands")
sources_app = typer.Typer(help="Source management commands")
jobs_app = typer.Typer(help="Job management commands")
schedule_app = typer.Typer(help="Sync schedule commands")
review_app = typer.Typer(help="Review queue commands")

sync_app.add_typer(sources_app, name="sources")
sync_app.add_typer(jobs_app, name="jobs")
sync_app.add_typer(schedule_app, name="schedule")
sync_app.add_typer(review_app, name="review")

DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]


def _get_admin() -> AdminService:
    """Admin service over the default database and source registry."""
    from manga_sync.db.engine import init_db
    from manga_sync.ingestion.scheduler import create_default_scheduler

    init_db()
    return AdminService(create_default_scheduler())


@sync_app.command("run")
def run_sync(
    sources: Optional[list[str]] = typer.Option(
        None, "--source", "-s", help="Source id to sync (repeatable, default: all active)"
    ),
    background: bool = typer.Option(
        False, "--background", "-b", help="Queue the job for the worker instead of running it"
    ),
) -> None:
    """
    Run a sync pass over the active sources.

    Examples:
        manga-sync sync run
        manga-sync sync run --source mangadex --source manga-api
        manga-sync sync run --background
    """
    admin = _get_admin()

    try:
        job_id = admin.trigger_sync(sources or None)
    except SourceNotFoundError as e:
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    except SyncConflictError as e:
        rprint(f"[yellow]A sync job is already waiting:[/yellow] {e.job_id}")
        raise typer.Exit(1)

    rprint(f"\n[bold]Sync job queued:[/bold] {job_id}")

    if background:
        from manga_sync.ingestion.jobs import enqueue_queue_kick

        try:
            asyncio.run(enqueue_queue_kick())
        except Exception as e:
            rprint(f"\n[yellow]Warning:[/yellow] Could not notify the worker: {e}")
            rprint("The job will start on the worker's next tick.")
        rprint("\nCheck status with:")
        rprint(f"  manga-sync sync jobs status {job_id}")
        return

    with console.status("[bold blue]Syncing...[/bold blue]"):
        job = asyncio.run(admin.scheduler.process_queue())

    if job is None or job.id != job_id:
        rprint("[yellow]Another sync job is running; this one will start after it.[/yellow]")
        return

    _display_job(job)
    if job.status == JobStatus.FAILED:
        raise typer.Exit(1)


@sync_app.command("worker")
def start_worker(
    burst: bool = typer.Option(False, "--burst", help="Run in burst mode (exit when queue empty)"),
) -> None:
    """
    Start the sync worker.

    The worker ticks the schedule and runs queued sync jobs via Redis.

    Examples:
        manga-sync sync worker
        manga-sync sync worker --burst
    """
    from arq import run_worker

    from manga_sync.ingestion.jobs import WorkerSettings

    rprint("[bold]Starting sync worker...[/bold]")
    rprint("Press Ctrl+C to stop\n")

    try:
        run_worker(WorkerSettings, burst=burst)
    except Exception as e:
        rprint(f"[red]Error:[/red] Worker failed: {e}")
        rprint("\nMake sure Redis is running:")
        rprint("  docker-compose up -d redis")
        raise typer.Exit(1)


# Sources subcommands


@sources_app.command("list")
def list_sources(
    all_sources: bool = typer.Option(False, "--all", "-a", help="Show all sources including inactive"),
) -> None:
    """
    List configured sources in sync order.

    Examples:
        manga-sync sync sources list
        manga-sync sync sources list --all
    """
    sources = _get_admin().list_sources()
    if not all_sources:
        sources = [s for s in sources if s.is_active]

    if not sources:
        rprint("[yellow]No sources configured[/yellow]")
        rprint("\nAdd sources to config/sources.yaml or through the admin API")
        return

    table = Table(title="Sync Sources")
    table.add_column("ID", style="bold")
    table.add_column("Name")
    table.add_column("Kind")
    table.add_column("Status")
    table.add_column("Rate Limit")
    table.add_column("Last Sync")

    for source in sources:
        status = "[green]active[/green]" if source.is_active else "[yellow]inactive[/yellow]"
        rate = f"{source.settings.rate_limit:g}/min" if source.settings.rate_limit else "-"
        last_sync = source.last_sync_at.strftime("%Y-%m-%d %H:%M") if source.last_sync_at else "never"
        table.add_row(source.id, source.name, source.fetch_kind.value, status, rate, last_sync)

    console.print(table)


@sources_app.command("show")
def show_source(
    source_id: str = typer.Argument(..., help="Source id"),
) -> None:
    """
    Show detailed information about a source.

    Examples:
        manga-sync sync sources show mangadex
    """
    try:
        source = _get_admin().get_source(source_id)
    except SourceNotFoundError:
        rprint(f"[red]Error:[/red] Source '{source_id}' not found")
        raise typer.Exit(1)

    status = "[green]active[/green]" if source.is_active else "[yellow]inactive[/yellow]"

    rprint(f"\n[bold]Source: {source.name}[/bold]")
    rprint(f"  ID: {source.id}")
    rprint(f"  Status: {status}")
    rprint(f"  Base URL: {source.base_url}")
    rprint(f"  Catalog path: {source.settings.catalog_path}")
    rprint(f"  Kind: {source.fetch_kind.value}")
    rprint(f"  API key: {'set' if source.settings.api_key else 'not set'}")
    if source.settings.rate_limit:
        rprint(f"  Rate limit: {source.settings.rate_limit:g} requests/minute")
    if source.last_sync_at:
        rprint(f"  Last sync: {source.last_sync_at.isoformat()}")

    if source.settings.headers:
        rprint("\n[bold]Headers:[/bold]")
        for name in source.settings.headers:
            rprint(f"  • {name}")


@sources_app.command("enable")
def enable_source(
    source_id: str = typer.Argument(..., help="Source id"),
) -> None:
    """
    Enable a source.

    Examples:
        manga-sync sync sources enable mangadex
    """
    _set_active(source_id, True)
    rprint(f"[green]Source '{source_id}' enabled[/green]")


@sources_app.command("disable")
def disable_source(
    source_id: str = typer.Argument(..., help="Source id"),
) -> None:
    """
    Disable a source.

    Examples:
        manga-sync sync sources disable mangadex
    """
    _set_active(source_id, False)
    rprint(f"[yellow]Source '{source_id}' disabled[/yellow]")


def _set_active(source_id: str, active: bool) -> None:
    admin = _get_admin()
    try:
        admin.set_source_active(source_id, active)
    except SourceNotFoundError:
        rprint(f"[red]Error:[/red] Source '{source_id}' not found")
        raise typer.Exit(1)

    from manga_sync.db.engine import get_session
    from manga_sync.db.repositories import SourceRepository

    with get_session() as session:
        stored = SourceRepository(session).get_by_id(source_id) is not None
    if not stored:
        rprint("\n[dim]Note: Edit config/sources.yaml to persist this change[/dim]")


@sources_app.command("test")
def test_source(
    source_id: str = typer.Argument(..., help="Source id"),
) -> None:
    """
    Fetch a source and show a sample of its catalog without storing anything.

    Examples:
        manga-sync sync sources test mangadex
    """
    admin = _get_admin()
    try:
        with console.status("[bold blue]Fetching...[/bold blue]"):
            outcome = asyncio.run(admin.test_source(source_id))
    except SourceNotFoundError:
        rprint(f"[red]Error:[/red] Source '{source_id}' not found")
        raise typer.Exit(1)

    if not outcome["success"]:
        rprint(f"[red]Source test failed:[/red] {outcome['error']}")
        raise typer.Exit(1)

    rprint(f"[green]Source test succeeded:[/green] {outcome['count']} works found")
    for sample in outcome["sample"]:
        author = f" by {sample['author']}" if sample.get("author") else ""
        rprint(f"  • {sample['title']}{author} ({sample['chapters']} chapters)")


# Jobs subcommands


@jobs_app.command("list")
def list_jobs(
    limit: int = typer.Option(20, "--limit", "-n", help="Number of jobs to show"),
) -> None:
    """
    List recent sync jobs.

    Examples:
        manga-sync sync jobs list
        manga-sync sync jobs list -n 5
    """
    jobs = _get_admin().list_jobs(limit)
    if not jobs:
        rprint("[yellow]No sync jobs yet[/yellow]")
        return

    table = Table(title="Sync Jobs")
    table.add_column("ID", style="bold")
    table.add_column("Status")
    table.add_column("Trigger")
    table.add_column("Created")
    table.add_column("New Works")
    table.add_column("New Chapters")
    table.add_column("Errors")

    for job in jobs:
        result = job.result
        table.add_row(
            job.id,
            _status_markup(job.status),
            job.trigger.value,
            job.created_at.strftime("%Y-%m-%d %H:%M"),
            str(result.new_works) if result else "-",
            str(result.new_chapters) if result else "-",
            str(len(result.errors)) if result else "-",
        )

    console.print(table)


@jobs_app.command("status")
def job_status(
    job_id: str = typer.Argument(..., help="Job ID to check"),
) -> None:
    """
    Check the status of a sync job.

    Examples:
        manga-sync sync jobs status 1b9d6bcd-bbfd-4b2d-9b5d-ab8dfbbd4bed
    """
    try:
        job = _get_admin().get_job(job_id)
    except JobNotFoundError:
        rprint(f"[yellow]Job '{job_id}' not found[/yellow]")
        raise typer.Exit(1)
    _display_job(job)


@jobs_app.command("cancel")
def cancel_job(
    job_id: str = typer.Argument(..., help="Job ID to cancel"),
) -> None:
    """
    Cancel a pending sync job.

    Examples:
        manga-sync sync jobs cancel 1b9d6bcd-bbfd-4b2d-9b5d-ab8dfbbd4bed
    """
    try:
        _get_admin().cancel_job(job_id)
    except JobNotFoundError:
        rprint(f"[yellow]Job '{job_id}' not found[/yellow]")
        raise typer.Exit(1)
    except JobStateError as e:
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    rprint(f"[green]Job '{job_id}' cancelled[/green]")


# Schedule subcommands


@schedule_app.command("show")
def show_schedule() -> None:
    """
    Show the sync schedule.

    Examples:
        manga-sync sync schedule show
    """
    config = _get_admin().get_schedule()
    _display_schedule(config)


@schedule_app.command("set")
def set_schedule(
    interval: ScheduleInterval = typer.Option(..., "--interval", "-i", help="Schedule interval"),
    time: Optional[str] = typer.Option(None, "--time", "-t", help="HH:MM for daily/weekly"),
    day_of_week: Optional[int] = typer.Option(
        None, "--day", "-d", help="Day of week for weekly (0 = Sunday)"
    ),
    custom_interval: Optional[int] = typer.Option(
        None, "--every", help="Minutes between syncs for custom"
    ),
    sources: Optional[list[str]] = typer.Option(
        None, "--source", "-s", help="Limit to source id (repeatable)"
    ),
    timezone: str = typer.Option("UTC", "--timezone", help="IANA timezone for --time"),
    enabled: bool = typer.Option(True, "--enable/--disable", help="Enable the schedule"),
) -> None:
    """
    Set the sync schedule.

    Examples:
        manga-sync sync schedule set --interval daily --time 02:00
        manga-sync sync schedule set -i weekly -t 03:30 -d 0
        manga-sync sync schedule set -i custom --every 90
        manga-sync sync schedule set -i hourly --disable
    """
    data = {
        "enabled": enabled,
        "interval": interval,
        "day_of_week": day_of_week,
        "custom_interval": custom_interval,
        "sources": sources or [],
        "timezone": timezone,
    }
    if time is not None:
        data["time"] = time

    try:
        config = ScheduleConfig(**data)
    except ValidationError as e:
        rprint("[red]Error:[/red] Invalid schedule")
        for error in e.errors():
            rprint(f"  • {error['msg']}")
        raise typer.Exit(1)

    _get_admin().update_schedule(config)
    rprint("[green]Schedule updated[/green]")
    _display_schedule(config)


# Review subcommands


@review_app.command("stats")
def review_stats() -> None:
    """
    Show review queue statistics.

    Examples:
        manga-sync sync review stats
    """
    stats = _get_admin().review_stats()

    rprint("\n[bold]Review Queue[/bold]")
    rprint(f"  Pending works: {stats.pending_works}")
    rprint(f"  Pending chapters: {stats.pending_chapters}")
    rprint(f"  Total pending: {stats.total_pending}")
    rprint(f"  Approved today: {stats.approved_today}")
    rprint(f"  Rejected today: {stats.rejected_today}")
    rprint(f"  Oldest pending: {stats.oldest_pending_days} days")


@review_app.command("list")
def list_review_items(
    status: ApprovalStatus = typer.Option(ApprovalStatus.PENDING, "--status", help="Item status"),
    limit: int = typer.Option(20, "--limit", "-n", help="Number of items to show"),
) -> None:
    """
    List review queue items, works first.

    Examples:
        manga-sync sync review list
        manga-sync sync review list --status rejected
    """
    items = _get_admin().list_review_items(status=status, limit=limit)
    if not items:
        rprint(f"[yellow]No {status.value} items[/yellow]")
        return

    table = Table(title=f"Review Queue ({status.value})")
    table.add_column("ID", style="bold")
    table.add_column("Kind")
    table.add_column("Title")
    table.add_column("Submitted")

    for item in items:
        table.add_row(
            item.id,
            item.content_kind.value,
            item.title,
            item.submitted_at.strftime("%Y-%m-%d %H:%M"),
        )

    console.print(table)


def _status_markup(status: JobStatus) -> str:
    color = {
        JobStatus.COMPLETED: "green",
        JobStatus.RUNNING: "blue",
        JobStatus.PENDING: "yellow",
        JobStatus.FAILED: "red",
    }[status]
    return f"[{color}]{status.value}[/{color}]"


def _display_job(job: SyncJob) -> None:
    """Display a job and its result."""
    rprint(f"\n[bold]Job: {job.id}[/bold]")
    rprint(f"  Status: {_status_markup(job.status)}")
    rprint(f"  Trigger: {job.trigger.value}")
    if job.source_ids:
        rprint(f"  Sources: {', '.join(job.source_ids)}")
    if job.duration_seconds is not None:
        rprint(f"  Duration: {job.duration_seconds:.1f}s")
    if job.status == JobStatus.RUNNING:
        rprint(f"  Step: {job.progress.current_step}")
        rprint(f"  Works processed: {job.progress.processed_works}")

    result = job.result
    if result is None:
        return

    rprint("\n[bold]Statistics:[/bold]")
    rprint(f"  New works: {result.new_works}")
    rprint(f"  New chapters: {result.new_chapters}")
    rprint(f"  Duplicates skipped: {result.duplicates_skipped}")
    rprint(f"  Pending review: {result.pending_review}")

    if result.errors:
        rprint(f"\n[bold red]Errors ({len(result.errors)}):[/bold red]")
        for error in result.errors[:10]:  # Show first 10
            rprint(f"  • {error}")
        if len(result.errors) > 10:
            rprint(f"  ... and {len(result.errors) - 10} more")


def _display_schedule(config: ScheduleConfig) -> None:
    status = "[green]enabled[/green]" if config.enabled else "[yellow]disabled[/yellow]"
    rprint("\n[bold]Sync Schedule[/bold]")
    rprint(f"  Status: {status}")
    rprint(f"  Interval: {config.interval.value}")
    if config.interval in (ScheduleInterval.DAILY, ScheduleInterval.WEEKLY):
        rprint(f"  Time: {config.time} ({config.timezone})")
    if config.interval == ScheduleInterval.WEEKLY and config.day_of_week is not None:
        rprint(f"  Day: {DAY_NAMES[config.day_of_week]}")
    if config.interval == ScheduleInterval.CUSTOM:
        rprint(f"  Every: {config.custom_interval} minutes")
    rprint(f"  Sources: {', '.join(config.sources) if config.sources else 'all active'}")
