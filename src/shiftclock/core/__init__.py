"""Core functionality for time tracking."""

from shiftclock.core.collection import EntryCollection
from shiftclock.core.models import (
    EntryStatus,
    Reference,
    Resolved,
    TimeEntry,
    TrackingType,
    Unresolved,
    UserRecord,
    resolve,
)
from shiftclock.core.shift_policy import ShiftPolicy

__all__ = [
    "EntryCollection",
    "EntryStatus",
    "Reference",
    "Resolved",
    "ShiftPolicy",
    "TimeEntry",
    "TrackingType",
    "Unresolved",
    "UserRecord",
    "resolve",
]
