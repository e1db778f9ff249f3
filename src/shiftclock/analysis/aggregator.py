"""Rollups over committed time entries.

Every function here is a pure function of the entries passed in. Inputs are
copied to a tuple first, sums are taken over whole seconds and Decimal amounts
so results do not depend on input order, and malformed entries degrade to
zeros or "Unknown" buckets instead of raising.
"""

from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Mapping, Optional

from shiftclock.core.duration import SECONDS_PER_HOUR
from shiftclock.core.models import Reference, Resolved, TimeEntry, TrackingType, UserRecord, resolve
from shiftclock.core.shift_policy import ShiftPolicy

UNKNOWN_PROJECT = "Unknown Project"
UNKNOWN_TASK = "Unknown Task"
UNKNOWN_USER = "Unknown User"
UNASSIGNED_SHIFT = "Unassigned"

WEEK_DAYS = 7
OVERTIME_THRESHOLD_HOURS = 40.0

Catalog = Optional[Mapping[str, Resolved]]


@dataclass(frozen=True)
class Totals:
    """Headline figures for a set of entries."""

    total_hours: float
    billable_hours: float
    revenue: Decimal
    entry_count: int


@dataclass(frozen=True)
class Rollup:
    """Figures for one group of entries (a project or a task)."""

    hours: float
    billable_hours: float
    revenue: Decimal
    entry_count: int


ProjectRollup = Rollup


@dataclass(frozen=True)
class UserRollup:
    """Figures for one user. ``productivity`` is the billable share in percent."""

    hours: float
    billable_hours: float
    productivity: float


@dataclass(frozen=True)
class DayBucket:
    date: date
    hours: float
    billable_hours: float
    entry_count: int


@dataclass(frozen=True)
class WorkPattern:
    """A user's recent working pattern.

    Attributes:
        user_id: User identifier
        name: Display name (falls back to the id)
        shift: Assigned tracking type, or one classified from the hours worked
        shift_assigned: False when ``shift`` was inferred
        working_days: Expected working pattern label for the shift
        week_hours: Hours recorded over the trailing seven days
        hours_per_day: week_hours spread over seven days
        overtime_hours: Hours above the 40 hour week
        project_count: Distinct projects worked on in the window
    """

    user_id: str
    name: str
    shift: TrackingType
    shift_assigned: bool
    working_days: str
    week_hours: float
    hours_per_day: float
    overtime_hours: float
    project_count: int


@dataclass(frozen=True)
class PendingSummary:
    """Entries committed locally but not yet confirmed by the service."""

    count: int
    hours: float


# Field accessors tolerant of malformed entries


def _seconds(entry: Any) -> int:
    try:
        return max(0, int(getattr(entry, "duration", 0) or 0))
    except (TypeError, ValueError):
        return 0


def _is_billable(entry: Any) -> bool:
    return getattr(entry, "billable", False) is True


def _amount(entry: Any) -> Decimal:
    if not _is_billable(entry):
        return Decimal("0")
    value = getattr(entry, "total_amount", None)
    if value is None:
        return Decimal("0")
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        return Decimal("0")
    return amount if amount.is_finite() else Decimal("0")


def _start_date(entry: Any) -> Optional[date]:
    start = getattr(entry, "start_time", None)
    if isinstance(start, datetime):
        return start.date()
    return None


def _ref_id(ref: Any) -> str:
    return str(getattr(ref, "id", "") or "")


def _label(ref: Optional[Reference], catalog: Catalog, fallback: str) -> str:
    """Display name for a reference: the resolved name, else the fallback."""
    if ref is None or not hasattr(ref, "id"):
        return fallback
    resolved = resolve(ref, catalog)
    if resolved is not None and resolved.name:
        return resolved.name
    return fallback


def _hours(seconds: int) -> float:
    return seconds / SECONDS_PER_HOUR


def _percent(part: int, whole: int) -> float:
    if whole <= 0:
        return 0.0
    return part / whole * 100


def _rollups(groups: Mapping[str, list[Any]]) -> dict[str, Rollup]:
    result = {}
    for key in sorted(groups):
        members = groups[key]
        result[key] = Rollup(
            hours=_hours(sum(_seconds(e) for e in members)),
            billable_hours=_hours(sum(_seconds(e) for e in members if _is_billable(e))),
            revenue=sum((_amount(e) for e in members), Decimal("0")),
            entry_count=len(members),
        )
    return result


# Rollups


def totals(entries: Iterable[TimeEntry]) -> Totals:
    """Total and billable hours, revenue and entry count.

    Revenue sums ``total_amount`` over billable entries that have one.
    """
    items = tuple(entries)
    return Totals(
        total_hours=_hours(sum(_seconds(e) for e in items)),
        billable_hours=_hours(sum(_seconds(e) for e in items if _is_billable(e))),
        revenue=sum((_amount(e) for e in items), Decimal("0")),
        entry_count=len(items),
    )


def productivity_score(entries: Iterable[TimeEntry]) -> float:
    """Billable hours as a percentage of total hours (0 when nothing is tracked)."""
    items = tuple(entries)
    total = sum(_seconds(e) for e in items)
    billable = sum(_seconds(e) for e in items if _is_billable(e))
    return _percent(billable, total)


def by_project(entries: Iterable[TimeEntry], catalog: Catalog = None) -> dict[str, Rollup]:
    """Group by resolved project name ("Unknown Project" when unresolved)."""
    groups: dict[str, list[Any]] = defaultdict(list)
    for entry in tuple(entries):
        groups[_label(getattr(entry, "project", None), catalog, UNKNOWN_PROJECT)].append(entry)
    return _rollups(groups)


def by_task(entries: Iterable[TimeEntry], catalog: Catalog = None) -> dict[str, Rollup]:
    """Group by resolved task name ("Unknown Task" when missing or unresolved)."""
    groups: dict[str, list[Any]] = defaultdict(list)
    for entry in tuple(entries):
        groups[_label(getattr(entry, "task", None), catalog, UNKNOWN_TASK)].append(entry)
    return _rollups(groups)


def by_user(entries: Iterable[TimeEntry], catalog: Catalog = None) -> dict[str, UserRollup]:
    """Group by user: resolved name, else the raw id, else "Unknown User"."""
    seconds: dict[str, int] = defaultdict(int)
    billable: dict[str, int] = defaultdict(int)
    for entry in tuple(entries):
        user = getattr(entry, "user", None)
        key = _label(user, catalog, _ref_id(user) or UNKNOWN_USER)
        seconds[key] += _seconds(entry)
        if _is_billable(entry):
            billable[key] += _seconds(entry)

    return {
        key: UserRollup(
            hours=_hours(seconds[key]),
            billable_hours=_hours(billable[key]),
            productivity=_percent(billable[key], seconds[key]),
        )
        for key in sorted(seconds)
    }


def daily_series(
    entries: Iterable[TimeEntry],
    window_days: int = 7,
    today: Optional[date] = None,
) -> list[DayBucket]:
    """Per-day figures for the trailing window, oldest day first.

    Days without entries are included with zeros. Entries are bucketed by the
    date of their start time.
    """
    if window_days <= 0:
        return []
    today = today or date.today()
    first_day = today - timedelta(days=window_days - 1)

    seconds: dict[date, int] = defaultdict(int)
    billable: dict[date, int] = defaultdict(int)
    counts: dict[date, int] = defaultdict(int)
    for entry in tuple(entries):
        day = _start_date(entry)
        if day is None or day < first_day or day > today:
            continue
        seconds[day] += _seconds(entry)
        counts[day] += 1
        if _is_billable(entry):
            billable[day] += _seconds(entry)

    series = []
    for offset in range(window_days):
        day = first_day + timedelta(days=offset)
        series.append(
            DayBucket(
                date=day,
                hours=_hours(seconds[day]),
                billable_hours=_hours(billable[day]),
                entry_count=counts[day],
            )
        )
    return series


def top_projects(
    entries: Iterable[TimeEntry], limit: int = 5, catalog: Catalog = None
) -> list[tuple[str, Rollup]]:
    """Projects with the most hours, ties broken by name."""
    ranked = sorted(by_project(entries, catalog).items(), key=lambda item: (-item[1].hours, item[0]))
    return ranked[: max(0, limit)]


def unique_users(entries: Iterable[TimeEntry]) -> int:
    """Number of distinct users with at least one entry."""
    return len({_ref_id(getattr(e, "user", None)) for e in tuple(entries)} - {""})


def recent_entries(entries: Iterable[TimeEntry], limit: int = 20) -> list[TimeEntry]:
    """The most recent entries by start time, newest first."""
    dated = [e for e in tuple(entries) if isinstance(getattr(e, "start_time", None), datetime)]
    dated.sort(key=lambda e: (e.start_time, str(getattr(e, "id", ""))), reverse=True)
    return dated[: max(0, limit)]


def pending_summary(entries: Iterable[TimeEntry]) -> PendingSummary:
    """Count and hours of entries still waiting for the service."""
    pending = [e for e in tuple(entries) if getattr(e, "pending_sync", False) is True]
    return PendingSummary(count=len(pending), hours=_hours(sum(_seconds(e) for e in pending)))


def _assigned_shift(user: UserRecord) -> Optional[TrackingType]:
    if not user.shift:
        return None
    try:
        return TrackingType.parse(user.shift)
    except ValueError:
        return None


def shift_distribution(users: Iterable[UserRecord]) -> dict[str, int]:
    """Number of users per shift; users without a valid shift count as "Unassigned"."""
    distribution = {tracking_type.value: 0 for tracking_type in TrackingType}
    for user in tuple(users):
        shift = _assigned_shift(user)
        if shift is None:
            distribution[UNASSIGNED_SHIFT] = distribution.get(UNASSIGNED_SHIFT, 0) + 1
        else:
            distribution[shift.value] += 1
    return distribution


def work_patterns(
    entries: Iterable[TimeEntry],
    users: Iterable[UserRecord],
    today: Optional[date] = None,
) -> list[WorkPattern]:
    """Weekly working pattern of each user over the trailing seven days.

    Users without an assigned shift are classified from the hours they
    worked in the window.

    Args:
        entries: Entries to analyze
        users: Users to report on
        today: Last day of the window. Defaults to today.

    Returns:
        One pattern per user, ordered by user id
    """
    today = today or date.today()
    first_day = today - timedelta(days=WEEK_DAYS - 1)

    seconds: dict[str, int] = defaultdict(int)
    projects: dict[str, set[str]] = defaultdict(set)
    for entry in tuple(entries):
        day = _start_date(entry)
        if day is None or day < first_day or day > today:
            continue
        user_id = _ref_id(getattr(entry, "user", None))
        seconds[user_id] += _seconds(entry)
        project_id = _ref_id(getattr(entry, "project", None))
        if project_id:
            projects[user_id].add(project_id)

    patterns = []
    for user in sorted(tuple(users), key=lambda u: u.id):
        week_hours = _hours(seconds[user.id])
        shift = _assigned_shift(user)
        assigned = shift is not None
        if shift is None:
            shift = ShiftPolicy.classify_hours(week_hours)
        patterns.append(
            WorkPattern(
                user_id=user.id,
                name=user.name or user.id,
                shift=shift,
                shift_assigned=assigned,
                working_days=ShiftPolicy.rules(shift).working_days,
                week_hours=week_hours,
                hours_per_day=week_hours / WEEK_DAYS,
                overtime_hours=max(0.0, week_hours - OVERTIME_THRESHOLD_HOURS),
                project_count=len(projects[user.id]),
            )
        )
    return patterns
