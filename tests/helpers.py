"""Test doubles and builders shared across the test modules."""

import asyncio
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Optional

from shiftclock.core.duration import finalize_duration
from shiftclock.core.errors import NotFoundError
from shiftclock.core.models import (
    EntryStatus,
    Reference,
    TimeEntry,
    TrackingType,
    Unresolved,
    UserRecord,
)
from shiftclock.service.base import EntryFilters, TimeEntryService
from shiftclock.service.schemas import TimeEntryPayload


class ManualClock:
    """Clock that only moves when told to."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2024, 3, 4, 9, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeTimeEntryService(TimeEntryService):
    """In-memory time-entry service.

    ``fail_with`` makes every call raise; ``fail_on`` maps a method name to
    the error that method raises; ``delay`` makes every call sleep first.
    """

    def __init__(self, clock: Any = datetime.now):
        self.clock = clock
        self.entries: dict[str, TimeEntry] = {}
        self.calls: list[tuple[str, Any]] = []
        self.fail_with: Optional[Exception] = None
        self.fail_on: dict[str, Exception] = {}
        self.delay = 0.0
        self.closed = False
        self._next_id = 0

    async def _enter(self, name: str, arg: Any) -> None:
        self.calls.append((name, arg))
        if self.delay:
            await asyncio.sleep(self.delay)
        error = self.fail_on.get(name) or self.fail_with
        if error is not None:
            raise error

    def _new_id(self) -> str:
        self._next_id += 1
        return f"srv-{self._next_id}"

    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]

    async def start_timer(
        self,
        user_id: str,
        project: Reference,
        task: Optional[Reference],
        description: str,
        tracking_type: TrackingType,
        billable: bool,
        hourly_rate: Optional[Decimal],
    ) -> TimeEntry:
        await self._enter("start_timer", description)
        entry = TimeEntry(
            id=self._new_id(),
            user=Unresolved(id=user_id),
            project=project,
            task=task,
            description=description,
            start_time=self.clock(),
            tracking_type=tracking_type,
            billable=billable,
            hourly_rate=hourly_rate,
        )
        self.entries[entry.id] = entry
        return entry

    async def stop_timer(self, entry_id: str) -> TimeEntry:
        await self._enter("stop_timer", entry_id)
        entry = self.entries.get(entry_id)
        if entry is None:
            raise NotFoundError(f"Time entry not found: {entry_id}")
        end = self.clock()
        entry.end_time = end
        entry.duration = finalize_duration(entry.start_time, end)
        entry.status = EntryStatus.COMPLETED
        return entry

    async def create_time_entry(self, fields: dict[str, Any]) -> TimeEntry:
        await self._enter("create_time_entry", fields)
        payload = TimeEntryPayload.model_validate(fields)
        entry = payload.model_copy(update={"id": self._new_id()}).to_entry()
        self.entries[entry.id] = entry
        return entry

    async def update_time_entry(self, entry_id: str, fields: dict[str, Any]) -> TimeEntry:
        await self._enter("update_time_entry", (entry_id, fields))
        if entry_id not in self.entries:
            raise NotFoundError(f"Time entry not found: {entry_id}")
        payload = TimeEntryPayload.model_validate(fields)
        entry = payload.model_copy(update={"id": entry_id}).to_entry()
        self.entries[entry_id] = entry
        return entry

    async def delete_time_entry(self, entry_id: str) -> None:
        await self._enter("delete_time_entry", entry_id)
        if self.entries.pop(entry_id, None) is None:
            raise NotFoundError(f"Time entry not found: {entry_id}")

    async def list_time_entries(self, filters: Optional[EntryFilters] = None) -> list[TimeEntry]:
        await self._enter("list_time_entries", filters)
        return [e for e in self.entries.values() if filters is None or filters.matches(e)]

    async def aclose(self) -> None:
        self.closed = True


USERS = {
    "u1": UserRecord(id="u1", name="Alice", shift="Daily", hourly_rate=Decimal("50")),
    "u2": UserRecord(id="u2", name="Bob", shift=None, hourly_rate=Decimal("30")),
    "u3": UserRecord(id="u3", name="Cara", shift="Monthly", hourly_rate=None),
}


def make_entry(**overrides: Any) -> TimeEntry:
    """Build a completed entry with sensible defaults."""
    fields: dict[str, Any] = {
        "user": Unresolved(id="u1"),
        "project": Unresolved(id="p1"),
        "description": "work",
        "start_time": datetime(2024, 3, 4, 9, 0, 0),
        "end_time": datetime(2024, 3, 4, 10, 0, 0),
        "duration": 3600,
        "status": EntryStatus.COMPLETED,
    }
    fields.update(overrides)
    return TimeEntry(**fields)
