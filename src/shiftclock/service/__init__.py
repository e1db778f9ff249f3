"""Boundaries to the external time-entry service and team directory."""

from shiftclock.service.base import EntryFilters, ShiftDirectory, TimeEntryService
from shiftclock.service.directory import StaticShiftDirectory
from shiftclock.service.http import HttpClient, HttpShiftDirectory, HttpTimeEntryService
from shiftclock.service.offline import OfflineTimeEntryService

__all__ = [
    "EntryFilters",
    "ShiftDirectory",
    "TimeEntryService",
    "StaticShiftDirectory",
    "HttpClient",
    "HttpShiftDirectory",
    "HttpTimeEntryService",
    "OfflineTimeEntryService",
]
