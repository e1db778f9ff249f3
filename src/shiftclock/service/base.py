"""Base classes for the external time-entry service and shift directory.

The engine never talks to a backend directly; it goes through these
boundaries so the persistence layer can be swapped or faked.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from shiftclock.core.models import EntryStatus, Reference, TimeEntry, TrackingType, UserRecord


@dataclass
class EntryFilters:
    """Filters accepted by ``TimeEntryService.list_time_entries``."""

    user_id: Optional[str] = None
    project: Optional[str] = None
    status: Optional[EntryStatus] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    def matches(self, entry: TimeEntry) -> bool:
        """Check whether an entry passes every filter that is set."""
        if self.user_id and entry.user_id != self.user_id:
            return False
        if self.project and entry.project_id != self.project:
            return False
        if self.status and entry.status != self.status:
            return False
        if self.start_date and entry.start_time < self.start_date:
            return False
        if self.end_date and entry.start_time > self.end_date:
            return False
        return True

    def to_params(self) -> dict[str, str]:
        """Convert to query parameters, skipping unset filters."""
        params = {
            "userId": self.user_id,
            "project": self.project,
            "status": self.status.value if self.status else None,
            "startDate": self.start_date.isoformat() if self.start_date else None,
            "endDate": self.end_date.isoformat() if self.end_date else None,
        }
        return {key: value for key, value in params.items() if value}


class TimeEntryService(ABC):
    """Remote persistence for time entries."""

    @abstractmethod
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
        """Open a new In Progress entry on the service."""

    @abstractmethod
    async def stop_timer(self, entry_id: str) -> TimeEntry:
        """Complete a running entry.

        Raises:
            NotFoundError: If the service does not know entry_id
        """

    @abstractmethod
    async def create_time_entry(self, fields: dict[str, Any]) -> TimeEntry:
        """Create a finished (or manual) entry from wire fields."""

    @abstractmethod
    async def update_time_entry(self, entry_id: str, fields: dict[str, Any]) -> TimeEntry:
        """Apply a partial update to an entry."""

    @abstractmethod
    async def delete_time_entry(self, entry_id: str) -> None:
        """Delete an entry."""

    @abstractmethod
    async def list_time_entries(self, filters: Optional[EntryFilters] = None) -> list[TimeEntry]:
        """List entries matching the filters."""

    async def aclose(self) -> None:
        """Release any underlying connections."""


class ShiftDirectory(ABC):
    """Source of user records (shift assignment, default rate)."""

    @abstractmethod
    async def get_user(self, user_id: str) -> UserRecord:
        """Look up a user.

        Raises:
            NotFoundError: If the user does not exist
        """
