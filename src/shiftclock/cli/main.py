"""Main CLI application."""

import asyncio
import logging
import sys
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, TypeVar

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from shiftclock import __version__
from shiftclock.analysis.reports import ReportGenerator
from shiftclock.cli.config_commands import config, load_config
from shiftclock.core.config import ConfigManager
from shiftclock.core.duration import format_duration, format_human
from shiftclock.core.errors import ShiftclockError, TransportError, ValidationError
from shiftclock.core.models import TimeEntry, UserRecord, resolve
from shiftclock.core.shift_policy import ShiftPolicy
from shiftclock.core.storage import LocalStore
from shiftclock.core.timer import TimerController, TimerRegistry, TimerState
from shiftclock.service import (
    EntryFilters,
    HttpClient,
    HttpShiftDirectory,
    HttpTimeEntryService,
    OfflineTimeEntryService,
    ShiftDirectory,
    StaticShiftDirectory,
    TimeEntryService,
)
from shiftclock.sync.queue import SyncQueue

console = Console()
error_console = Console(stderr=True)

T = TypeVar("T")

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level_name: str, log_file: Optional[Path] = None, verbose: bool = False) -> None:
    """Configure the root logger for a CLI run.

    Degraded-mode warnings are already printed by the commands, so the
    console handler only shows errors unless ``verbose`` is set.
    """
    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        if getattr(handler, "shiftclock_handler", False):
            root_logger.removeHandler(handler)
            handler.close()

    log_level = getattr(logging, level_name.upper(), logging.WARNING)
    root_logger.setLevel(log_level)
    formatter = logging.Formatter(LOG_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level if verbose else max(log_level, logging.ERROR))
    handlers: list[logging.Handler] = [console_handler]

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(log_level)
        handlers.append(file_handler)

    for handler in handlers:
        handler.setFormatter(formatter)
        handler.shiftclock_handler = True  # type: ignore[attr-defined]
        root_logger.addHandler(handler)


def format_datetime(dt: datetime) -> str:
    """Format datetime for display."""
    return dt.strftime("%Y-%m-%d %H:%M:%S")


def describe_ref(ref: Any, fallback: str = "-") -> str:
    """Display a reference by name when resolved, else by id."""
    if ref is None:
        return fallback
    resolved = resolve(ref)
    return resolved.name if resolved else ref.id


def print_warning(message: str) -> None:
    console.print(f"[yellow]Warning:[/yellow] {message}")


@dataclass
class Runtime:
    """Everything one CLI invocation needs, wired from the config file."""

    config: ConfigManager
    store: LocalStore
    service: TimeEntryService
    directory: ShiftDirectory
    sync: SyncQueue
    registry: TimerRegistry
    user_id: Optional[str]

    def require_user(self) -> str:
        if not self.user_id:
            raise ValidationError("No user selected: pass --user or set general.user_id")
        return self.user_id

    def timer(self) -> TimerController:
        return self.registry.open(self.require_user())

    async def aclose(self) -> None:
        self.registry.close_all()
        await self.service.aclose()


def build_runtime(ctx: click.Context) -> Runtime:
    """Wire store, service, sync queue and timers for this invocation."""
    obj = ctx.find_root().obj
    config_mgr = load_config(ctx)

    data_dir = Path(obj["data_dir"]) if obj.get("data_dir") else config_mgr.data_dir
    store = LocalStore(data_dir)

    service: TimeEntryService
    directory: ShiftDirectory
    users = config_mgr.users()
    if obj.get("service") is not None:
        service = obj["service"]
        directory = obj.get("directory") or StaticShiftDirectory(users)
    elif obj.get("offline"):
        service = OfflineTimeEntryService()
        directory = StaticShiftDirectory(users)
    else:
        client = HttpClient(
            config_mgr.get("service.base_url", "http://localhost:5000/api"),
            timeout=float(config_mgr.get("service.timeout", 15.0)),
            token=config_mgr.get("service.token"),
        )
        service = HttpTimeEntryService(client)
        directory = StaticShiftDirectory(users) if users else HttpShiftDirectory(client)

    sync = SyncQueue(
        service,
        store,
        timeout=float(config_mgr.get("service.timeout", 15.0)),
        auto_reconcile=bool(config_mgr.get("sync.auto_reconcile", True)),
    )
    registry = TimerRegistry(
        sync,
        directory,
        store,
        policy=ShiftPolicy(config_mgr.default_tracking_type),
        tick_interval=float(config_mgr.get("timer.tick_interval", 1.0)),
        on_warning=print_warning,
    )
    return Runtime(
        config=config_mgr,
        store=store,
        service=service,
        directory=directory,
        sync=sync,
        registry=registry,
        user_id=obj.get("user") or config_mgr.get("general.user_id"),
    )


def run_command(ctx: click.Context, command: Callable[[Runtime], Awaitable[T]]) -> T:
    """Run an async command against a fresh runtime, mapping errors to exit code 1."""
    try:
        runtime = build_runtime(ctx)
    except ValueError as e:
        error_console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    log_file = runtime.config.get("advanced.log_file")
    setup_logging(
        runtime.config.get("advanced.log_level", "WARNING"),
        Path(log_file).expanduser() if log_file else None,
        verbose=ctx.find_root().obj.get("verbose", False),
    )

    async def main() -> T:
        try:
            return await command(runtime)
        finally:
            await runtime.aclose()

    try:
        return asyncio.run(main())
    except ShiftclockError as e:
        error_console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)


def print_entry(entry: TimeEntry) -> None:
    """Print the key fields of a committed entry."""
    console.print(f"  Duration: {format_human(entry.duration)} ({format_duration(entry.duration)})")
    console.print(f"  Project: {describe_ref(entry.project)}")
    if entry.task:
        console.print(f"  Task: {describe_ref(entry.task)}")
    if entry.billable and entry.total_amount is not None:
        console.print(f"  Amount: ${entry.total_amount:,.2f} @ ${entry.hourly_rate or 0}/h")
    if entry.pending_sync:
        console.print(f"  [yellow]Saved locally as {entry.id} (pending sync)[/yellow]")


@click.group()
@click.version_option(version=__version__)
@click.option("--data-dir", help="Custom data directory", type=click.Path())
@click.option("--config", "config_path", help="Path to config file", type=click.Path())
@click.option("-u", "--user", help="User id (defaults to general.user_id)")
@click.option("--offline", is_flag=True, help="Do not contact the service; queue everything locally")
@click.option("-v", "--verbose", is_flag=True, help="Show log output on the console")
@click.option("--no-color", is_flag=True, help="Disable colored output")
@click.pass_context
def cli(
    ctx: click.Context,
    data_dir: Optional[str],
    config_path: Optional[str],
    user: Optional[str],
    offline: bool,
    verbose: bool,
    no_color: bool,
) -> None:
    """Shiftclock - Team timesheet time tracking.

    Track work sessions against projects, keep working when the timesheet
    service is down, and report on hours, revenue and productivity.
    """
    ctx.ensure_object(dict)
    ctx.obj["data_dir"] = data_dir
    ctx.obj["config_path"] = config_path
    ctx.obj["user"] = user
    ctx.obj["offline"] = offline
    ctx.obj["verbose"] = verbose

    if no_color:
        console.no_color = True


@cli.command()
@click.argument("description")
@click.option("-p", "--project", required=True, help="Project identifier")
@click.option("-t", "--task", help="Task identifier")
@click.option("--billable/--non-billable", default=True, help="Whether the time is billable")
@click.option("-r", "--rate", help="Hourly rate (defaults to the user's rate)")
@click.pass_context
def start(
    ctx: click.Context,
    description: str,
    project: str,
    task: Optional[str],
    billable: bool,
    rate: Optional[str],
) -> None:
    """Start a timer session.

    Example:
        shiftclock start "Landing page design" -p website -r 50
    """

    async def command(runtime: Runtime) -> TimeEntry:
        timer = runtime.timer()
        return await timer.start(project, description, task=task, billable=billable, hourly_rate=rate)

    entry = run_command(ctx, command)

    console.print(f"[green]✓[/green] Started tracking: {entry.description}")
    console.print(f"  Project: {describe_ref(entry.project)}")
    if entry.task:
        console.print(f"  Task: {describe_ref(entry.task)}")
    console.print(f"  Shift: {entry.tracking_type.value} ({ShiftPolicy.describe(entry.tracking_type)})")
    console.print(f"  Started: {format_datetime(entry.start_time)}")
    if entry.pending_sync:
        console.print("  [yellow]Running offline; will sync when the service is back[/yellow]")


@cli.command()
@click.pass_context
def pause(ctx: click.Context) -> None:
    """Pause the visible clock of the running session."""

    async def command(runtime: Runtime) -> int:
        timer = runtime.timer()
        await timer.pause()
        return timer.elapsed_seconds()

    elapsed = run_command(ctx, command)
    console.print(f"[yellow]⏸[/yellow]  Paused at {format_duration(elapsed)}")


@cli.command()
@click.pass_context
def resume(ctx: click.Context) -> None:
    """Resume a paused session."""

    async def command(runtime: Runtime) -> int:
        timer = runtime.timer()
        await timer.resume()
        return timer.elapsed_seconds()

    elapsed = run_command(ctx, command)
    console.print(f"[green]▶[/green]  Resumed at {format_duration(elapsed)}")


@cli.command()
@click.pass_context
def stop(ctx: click.Context) -> None:
    """Stop the running session and commit it.

    Example:
        shiftclock stop
    """

    async def command(runtime: Runtime) -> TimeEntry:
        return await runtime.timer().stop()

    entry = run_command(ctx, command)
    console.print(f"[green]✓[/green] Stopped tracking: {entry.description}")
    print_entry(entry)


@cli.command()
@click.pass_context
def cancel(ctx: click.Context) -> None:
    """Cancel the current session without saving it."""

    async def command(runtime: Runtime) -> TimeEntry:
        return await runtime.timer().cancel()

    entry = run_command(ctx, command)
    console.print(f"[yellow]✓[/yellow] Cancelled: {entry.description}")


@cli.command()
@click.argument("description")
@click.argument("duration")
@click.option("-p", "--project", required=True, help="Project identifier")
@click.option("-t", "--task", help="Task identifier")
@click.option("--billable/--non-billable", default=True, help="Whether the time is billable")
@click.option("-r", "--rate", help="Hourly rate (defaults to the user's rate)")
@click.pass_context
def log(
    ctx: click.Context,
    description: str,
    duration: str,
    project: str,
    task: Optional[str],
    billable: bool,
    rate: Optional[str],
) -> None:
    """Log a finished entry with a typed duration (HH:MM or HH:MM:SS).

    Example:
        shiftclock log "Client call" 1:30 -p acme -r 40
    """

    async def command(runtime: Runtime) -> TimeEntry:
        timer = runtime.timer()
        return await timer.manual_entry(
            project, description, duration, task=task, billable=billable, hourly_rate=rate
        )

    entry = run_command(ctx, command)
    console.print(f"[green]✓[/green] Logged: {entry.description}")
    print_entry(entry)


@cli.command()
@click.option("-v", "--verbose", "details", is_flag=True, help="Show detailed information")
@click.pass_context
def status(ctx: click.Context, details: bool) -> None:
    """Show the current session.

    Example:
        shiftclock status
    """

    async def command(runtime: Runtime) -> tuple[TimerController, int]:
        return runtime.timer(), len(runtime.sync.pending())

    timer, pending_count = run_command(ctx, command)
    entry = timer.current_session()

    if entry is None:
        console.print("[yellow]No session currently running[/yellow]")
        console.print('\nStart one with: [cyan]shiftclock start "Description" -p PROJECT[/cyan]')
    else:
        state = "Paused" if timer.state == TimerState.PAUSED else "Running"
        content = f"""[bold]{entry.description}[/bold]

[dim]State:[/dim] {state}
[dim]Started:[/dim] {format_datetime(entry.start_time)}
[dim]Elapsed:[/dim] {format_duration(timer.elapsed_seconds())}
[dim]Project:[/dim] {describe_ref(entry.project)}
[dim]Shift:[/dim] {entry.tracking_type.value}"""

        if entry.task:
            content += f"\n[dim]Task:[/dim] {describe_ref(entry.task)}"
        if details:
            content += f"\n[dim]Billable:[/dim] {'yes' if entry.billable else 'no'}"
            if entry.hourly_rate is not None:
                content += f"\n[dim]Rate:[/dim] ${entry.hourly_rate}/h"
            content += f"\n[dim]Entry ID:[/dim] {entry.id}"
        if entry.pending_sync:
            content += "\n[yellow]Offline (pending sync)[/yellow]"

        border = "yellow" if state == "Paused" else "green"
        console.print(Panel(content, title="Current Session", border_style=border))

    if pending_count:
        console.print(f"[yellow]{pending_count} entr{'y' if pending_count == 1 else 'ies'} waiting to sync[/yellow]")


@cli.command()
@click.option("--watch", is_flag=True, help="Keep reconciling on the configured interval")
@click.pass_context
def sync(ctx: click.Context, watch: bool) -> None:
    """Send locally queued entries to the service.

    Example:
        shiftclock sync
        shiftclock sync --watch
    """

    async def command(runtime: Runtime) -> Any:
        if watch:
            interval = float(runtime.config.get("sync.reconcile_interval", 60))
            console.print(f"Reconciling every {interval:.0f}s, press Ctrl+C to stop")
            await runtime.sync.run_reconciler(interval, asyncio.Event())
            return None
        return await runtime.sync.reconcile()

    try:
        report = run_command(ctx, command)
    except KeyboardInterrupt:
        console.print("Stopped")
        return
    if report is None:
        return

    for old_id, entry in report.synced:
        console.print(f"[green]✓[/green] Synced {old_id} → {entry.id}")
    for entry_id, error in report.failed:
        console.print(f"[red]✗[/red] Rejected {entry_id}: {error}")
    if report.deferred:
        console.print(f"[dim]{len(report.deferred)} running session(s) will sync after stop[/dim]")
    if report.interrupted:
        print_warning("Service unreachable; remaining entries stay queued")
    if not report.synced and not report.failed and not report.interrupted and not report.remaining:
        console.print("[green]Nothing to sync[/green]")
    else:
        console.print(f"{report.remaining} entr{'y' if report.remaining == 1 else 'ies'} still queued")


@cli.command()
@click.pass_context
def pending(ctx: click.Context) -> None:
    """List entries waiting to be synced."""

    async def command(runtime: Runtime) -> list[Any]:
        return runtime.store.load_pending()

    records = run_command(ctx, command)
    if not records:
        console.print("[green]No entries waiting to sync[/green]")
        return

    table = Table(title=f"Pending Sync ({len(records)})")
    table.add_column("ID", style="dim")
    table.add_column("Start", style="cyan")
    table.add_column("Duration", style="magenta")
    table.add_column("Description", style="bold")
    table.add_column("Project", style="blue")
    table.add_column("Operation")
    table.add_column("Attempts", justify="right")

    for record in records:
        entry = record.entry
        icon = "▶" if entry.is_running else "■"
        table.add_row(
            entry.id,
            format_datetime(entry.start_time),
            format_human(entry.duration) if not entry.is_running else "ongoing",
            f"{icon} {entry.description}",
            describe_ref(entry.project),
            record.operation,
            str(record.attempts),
        )

    console.print(table)


@cli.command()
@click.argument("entry_id")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
@click.pass_context
def discard(ctx: click.Context, entry_id: str, yes: bool) -> None:
    """Drop an entry that has not been synced yet.

    Example:
        shiftclock discard local-3f2a...
    """
    if not yes and not click.confirm(f"Discard unsynced entry {entry_id}?"):
        console.print("Cancelled")
        return

    async def command(runtime: Runtime) -> bool:
        if runtime.user_id:
            active = runtime.timer().current_session()
            if active is not None and active.id == entry_id:
                raise ValidationError("Entry is the running session; use 'shiftclock cancel'")
        return runtime.sync.discard(entry_id)

    if run_command(ctx, command):
        console.print(f"[yellow]✓[/yellow] Discarded {entry_id}")
    else:
        error_console.print(f"[red]Error:[/red] No unsynced entry with id {entry_id}")
        sys.exit(1)


@cli.command()
@click.argument("entry_id")
@click.option("-d", "--description", help="New description")
@click.option("-p", "--project", help="New project identifier")
@click.option("-t", "--task", help="New task identifier")
@click.option("--duration", help="New duration (HH:MM or HH:MM:SS)")
@click.option("--billable/--non-billable", default=None, help="Change whether the time is billable")
@click.option("-r", "--rate", help="New hourly rate")
@click.pass_context
def edit(
    ctx: click.Context,
    entry_id: str,
    description: Optional[str],
    project: Optional[str],
    task: Optional[str],
    duration: Optional[str],
    billable: Optional[bool],
    rate: Optional[str],
) -> None:
    """Change a committed entry. The amount is recalculated.

    Example:
        shiftclock edit 65f1a2 --duration 1:45 -r 45
    """

    async def command(runtime: Runtime) -> TimeEntry:
        timer = runtime.timer()
        entry = await runtime.sync.find(entry_id, runtime.user_id)
        return await timer.edit_entry(
            entry,
            project=project,
            description=description,
            duration_text=duration,
            task=task,
            billable=billable,
            hourly_rate=rate,
        )

    entry = run_command(ctx, command)
    console.print(f"[green]✓[/green] Updated: {entry.description}")
    print_entry(entry)


@cli.command()
@click.argument("entry_id")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
@click.pass_context
def delete(ctx: click.Context, entry_id: str, yes: bool) -> None:
    """Delete a committed entry.

    Example:
        shiftclock delete 65f1a2
    """
    if not yes and not click.confirm(f"Delete entry {entry_id}?"):
        console.print("Cancelled")
        return

    async def command(runtime: Runtime) -> TimeEntry:
        timer = runtime.timer()
        entry = await runtime.sync.find(entry_id, runtime.user_id)
        await timer.delete_entry(entry)
        return entry

    entry = run_command(ctx, command)
    console.print(f"[yellow]✓[/yellow] Deleted: {entry.description}")


async def collect_entries(runtime: Runtime, filters: EntryFilters) -> list[TimeEntry]:
    """Entries from the service plus matching entries still in the outbox."""
    try:
        entries = await runtime.sync.list_remote(filters)
    except TransportError as e:
        print_warning(f"Service unreachable ({e}); reporting on local entries only")
        entries = []

    known = {entry.id for entry in entries}
    for entry in runtime.sync.pending():
        if entry.id not in known and filters.matches(entry):
            entries.append(entry)
    return entries


@cli.command()
@click.argument(
    "type",
    type=click.Choice(["summary", "users", "daily", "team", "recent"]),
    default="summary",
)
@click.option("--days", type=int, help="Days to cover (default: reports.window_days)")
@click.option("-p", "--project", help="Filter by project")
@click.option("--all-users", is_flag=True, help="Report on the whole team instead of one user")
@click.pass_context
def report(
    ctx: click.Context,
    type: str,
    days: Optional[int],
    project: Optional[str],
    all_users: bool,
) -> None:
    """Generate reports.

    Types:
        summary - Totals, top projects and tasks
        users   - Hours and productivity per team member
        daily   - Day-by-day series with explicit zero days
        team    - Weekly work patterns and shift distribution
        recent  - Most recent entries

    Examples:
        shiftclock report summary --days 30
        shiftclock report team --all-users
    """

    async def command(runtime: Runtime) -> tuple[Runtime, list[TimeEntry], int]:
        window = days if days is not None else int(runtime.config.get("reports.window_days", 7))
        if window < 1:
            raise ValidationError("--days must be at least 1")
        if type == "team":
            window = max(window, 7)
        today = datetime.now().replace(hour=0, minute=0, second=0, microsecond=0)
        filters = EntryFilters(
            user_id=None if all_users else runtime.require_user(),
            project=project,
            start_date=today - timedelta(days=window - 1),
        )
        return runtime, await collect_entries(runtime, filters), window

    runtime, entries, window = run_command(ctx, command)
    report_gen = ReportGenerator(console)

    if type == "summary":
        report_gen.summary_report(
            entries,
            f"Last {window} Days",
            top=int(runtime.config.get("reports.top_projects", 5)),
        )
    elif type == "users":
        report_gen.user_report(entries)
    elif type == "daily":
        report_gen.daily_report(entries, window)
    elif type == "team":
        users = list(runtime.config.users().values())
        if not users:
            seen: dict[str, UserRecord] = {}
            for entry in entries:
                user = resolve(entry.user)
                seen.setdefault(entry.user_id, UserRecord(id=entry.user_id, name=user.name if user else ""))
            users = list(seen.values())
        report_gen.team_report(entries, users)
    elif type == "recent":
        report_gen.recent_report(entries, limit=int(runtime.config.get("reports.recent_entries", 20)))


cli.add_command(config)


if __name__ == "__main__":
    cli(obj={})
