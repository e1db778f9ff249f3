"""Report generation for time tracking data."""

from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

from rich.console import Console  # type: ignore[import-not-found]
from rich.table import Table  # type: ignore[import-not-found]
from rich.text import Text  # type: ignore[import-not-found]

from shiftclock.analysis import aggregator
from shiftclock.core.duration import SECONDS_PER_HOUR, format_human
from shiftclock.core.models import TimeEntry, TrackingType, UserRecord, resolve
from shiftclock.core.shift_policy import ShiftPolicy


def _hours_text(hours: float) -> str:
    return format_human(int(round(hours * SECONDS_PER_HOUR)))


def _money(amount: Decimal) -> str:
    return f"${amount:,.2f}"


class ReportGenerator:
    """Render Aggregator output as terminal reports."""

    def __init__(self, console: Optional[Console] = None):
        """Initialize report generator.

        Args:
            console: Rich console for output. Creates default if None.
        """
        self.console = console or Console()

    def summary_report(
        self,
        entries: Iterable[TimeEntry],
        period_label: str = "Summary",
        top: int = 5,
    ) -> None:
        """Generate and display summary report.

        Args:
            entries: Entries to analyze
            period_label: Label for the report period
            top: Number of projects to list
        """
        items = tuple(entries)
        if not items:
            self.console.print("[yellow]No entries found for this period[/yellow]")
            return

        totals = aggregator.totals(items)
        pending = aggregator.pending_summary(items)

        self.console.print(f"\n[bold cyan]Timesheet - {period_label}[/bold cyan]\n")

        overview_table = Table(show_header=False, box=None, padding=(0, 2))
        overview_table.add_column(style="dim")
        overview_table.add_column(style="bold")

        overview_table.add_row("Total Time:", _hours_text(totals.total_hours))
        overview_table.add_row("Billable Time:", _hours_text(totals.billable_hours))
        overview_table.add_row("Revenue:", _money(totals.revenue))
        overview_table.add_row("Productivity:", f"{aggregator.productivity_score(items):.1f}%")
        overview_table.add_row("Entries:", str(totals.entry_count))
        overview_table.add_row("Team Members:", str(aggregator.unique_users(items)))
        if pending.count:
            overview_table.add_row(
                "Pending Sync:",
                f"[yellow]{pending.count} ({_hours_text(pending.hours)})[/yellow]",
            )

        self.console.print(overview_table)
        self.console.print()

        project_table = Table(title=f"Top {top} Projects")
        project_table.add_column("Project", style="cyan")
        project_table.add_column("Hours", style="magenta", justify="right")
        project_table.add_column("Billable", style="green", justify="right")
        project_table.add_column("Revenue", style="yellow", justify="right")
        project_table.add_column("% Total", justify="right")
        project_table.add_column("Bar", style="blue")

        for project, rollup in aggregator.top_projects(items, limit=top):
            pct = (rollup.hours / totals.total_hours) * 100 if totals.total_hours > 0 else 0
            project_table.add_row(
                project,
                f"{rollup.hours:.2f}",
                f"{rollup.billable_hours:.2f}",
                _money(rollup.revenue),
                f"{pct:.1f}%",
                self._create_bar(pct),
            )

        self.console.print(project_table)
        self.console.print()

        by_task = aggregator.by_task(items)
        if len(by_task) > 1 or aggregator.UNKNOWN_TASK not in by_task:
            task_table = Table(title="Time by Task")
            task_table.add_column("Task", style="bold")
            task_table.add_column("Hours", style="magenta", justify="right")
            task_table.add_column("Entries", justify="right")

            ranked = sorted(by_task.items(), key=lambda x: (-x[1].hours, x[0]))[:10]
            for task, rollup in ranked:
                task_table.add_row(
                    task[:50] + "..." if len(task) > 50 else task,
                    f"{rollup.hours:.2f}",
                    str(rollup.entry_count),
                )

            self.console.print(task_table)

    def user_report(self, entries: Iterable[TimeEntry]) -> None:
        """Display hours and productivity per team member."""
        rollups = aggregator.by_user(entries)
        if not rollups:
            self.console.print("[yellow]No entries found[/yellow]")
            return

        table = Table(title="Team Productivity")
        table.add_column("Member", style="cyan")
        table.add_column("Hours", style="magenta", justify="right")
        table.add_column("Billable", style="green", justify="right")
        table.add_column("Productivity", justify="right")
        table.add_column("Bar", style="blue")

        for user, rollup in rollups.items():
            table.add_row(
                user,
                f"{rollup.hours:.2f}",
                f"{rollup.billable_hours:.2f}",
                f"{rollup.productivity:.1f}%",
                self._create_bar(rollup.productivity),
            )

        self.console.print(table)

    def daily_report(
        self,
        entries: Iterable[TimeEntry],
        window_days: int = 7,
        today: Optional[date] = None,
    ) -> None:
        """Display the trailing daily series, one row per day."""
        series = aggregator.daily_series(entries, window_days, today=today)
        peak = max((bucket.hours for bucket in series), default=0.0)

        table = Table(title=f"Last {window_days} Days")
        table.add_column("Date", style="cyan")
        table.add_column("Hours", style="magenta", justify="right")
        table.add_column("Billable", style="green", justify="right")
        table.add_column("Entries", justify="right")
        table.add_column("Bar", style="blue")

        for bucket in series:
            pct = (bucket.hours / peak) * 100 if peak > 0 else 0
            table.add_row(
                bucket.date.strftime("%a %Y-%m-%d"),
                f"{bucket.hours:.2f}",
                f"{bucket.billable_hours:.2f}",
                str(bucket.entry_count),
                self._create_bar(pct, width=20),
            )

        self.console.print(table)

    def team_report(
        self,
        entries: Iterable[TimeEntry],
        users: Iterable[UserRecord],
        today: Optional[date] = None,
    ) -> None:
        """Display each member's weekly work pattern and the shift distribution."""
        members = tuple(users)
        if not members:
            self.console.print("[yellow]No team members configured[/yellow]")
            return

        table = Table(title="Work Patterns (last 7 days)")
        table.add_column("Member", style="cyan")
        table.add_column("Shift", style="bold")
        table.add_column("Working Days")
        table.add_column("Week", style="magenta", justify="right")
        table.add_column("Per Day", justify="right")
        table.add_column("Overtime", style="red", justify="right")
        table.add_column("Projects", justify="right")

        for pattern in aggregator.work_patterns(entries, members, today=today):
            shift = pattern.shift.value if pattern.shift_assigned else f"{pattern.shift.value}*"
            table.add_row(
                pattern.name,
                shift,
                pattern.working_days,
                f"{pattern.week_hours:.1f}h",
                f"{pattern.hours_per_day:.1f}h",
                f"{pattern.overtime_hours:.1f}h" if pattern.overtime_hours else "-",
                str(pattern.project_count),
            )

        self.console.print(table)
        self.console.print("[dim]* no shift assigned, classified from hours worked[/dim]")
        self.console.print()

        distribution = Table(title="Shift Distribution")
        distribution.add_column("Shift", style="cyan")
        distribution.add_column("Members", justify="right")
        distribution.add_column("Tracking")
        for shift, count in aggregator.shift_distribution(members).items():
            guidance = ""
            if shift != aggregator.UNASSIGNED_SHIFT:
                guidance = ShiftPolicy.describe(TrackingType(shift))
            distribution.add_row(shift, str(count), guidance)

        self.console.print(distribution)

    def recent_report(self, entries: Iterable[TimeEntry], limit: int = 20) -> None:
        """Display the most recent entries, newest first."""
        recent = aggregator.recent_entries(entries, limit=limit)
        if not recent:
            self.console.print("[yellow]No entries found[/yellow]")
            return

        table = Table(title="Recent Entries")
        table.add_column("Started", style="cyan", width=16)
        table.add_column("Duration", style="magenta", width=10)
        table.add_column("Description", style="bold")
        table.add_column("Project", style="blue", width=18)
        table.add_column("Amount", style="green", justify="right")

        for entry in recent:
            project = resolve(entry.project)
            description = entry.description
            if entry.is_running:
                description = f"▶ {description}"
            if entry.pending_sync:
                description = f"{description} [yellow](pending)[/yellow]"

            table.add_row(
                entry.start_time.strftime("%Y-%m-%d %H:%M"),
                format_human(entry.duration) if not entry.is_running else "ongoing",
                description,
                project.name if project else aggregator.UNKNOWN_PROJECT,
                _money(entry.total_amount) if entry.total_amount is not None else "-",
            )

        self.console.print(table)

    def _create_bar(self, percentage: float, width: int = 25) -> Text:
        """Create a visual bar for percentage display.

        Args:
            percentage: Percentage value (0-100)
            width: Width of the bar in characters

        Returns:
            Rich Text object with colored bar
        """
        filled = int((min(percentage, 100) / 100) * width)
        empty = width - filled

        bar = Text()
        bar.append("█" * filled, style="blue")
        bar.append("░" * empty, style="dim")

        return bar
