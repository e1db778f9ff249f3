"""Analytics and reporting over committed time entries."""

from shiftclock.analysis.aggregator import (
    DayBucket,
    PendingSummary,
    ProjectRollup,
    Rollup,
    Totals,
    UserRollup,
    WorkPattern,
    by_project,
    by_task,
    by_user,
    daily_series,
    pending_summary,
    productivity_score,
    recent_entries,
    shift_distribution,
    top_projects,
    totals,
    unique_users,
    work_patterns,
)
from shiftclock.analysis.reports import ReportGenerator

__all__ = [
    "DayBucket",
    "PendingSummary",
    "ProjectRollup",
    "ReportGenerator",
    "Rollup",
    "Totals",
    "UserRollup",
    "WorkPattern",
    "by_project",
    "by_task",
    "by_user",
    "daily_series",
    "pending_summary",
    "productivity_score",
    "recent_entries",
    "shift_distribution",
    "top_projects",
    "totals",
    "unique_users",
    "work_patterns",
]
