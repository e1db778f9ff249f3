"""Service used when the client is told to work without the network."""

from decimal import Decimal
from typing import Any, NoReturn, Optional

from shiftclock.core.errors import TransportError
from shiftclock.core.models import Reference, TimeEntry, TrackingType
from shiftclock.service.base import EntryFilters, TimeEntryService


class OfflineTimeEntryService(TimeEntryService):
    """Every call fails as unreachable, so the sync queue commits locally."""

    def _unreachable(self) -> NoReturn:
        raise TransportError("Offline mode: time-entry service disabled")

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
        self._unreachable()

    async def stop_timer(self, entry_id: str) -> TimeEntry:
        self._unreachable()

    async def create_time_entry(self, fields: dict[str, Any]) -> TimeEntry:
        self._unreachable()

    async def update_time_entry(self, entry_id: str, fields: dict[str, Any]) -> TimeEntry:
        self._unreachable()

    async def delete_time_entry(self, entry_id: str) -> None:
        self._unreachable()

    async def list_time_entries(self, filters: Optional[EntryFilters] = None) -> list[TimeEntry]:
        self._unreachable()
