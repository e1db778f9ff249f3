"""In-memory collection of committed time entries."""

import threading
from typing import Iterable, Optional

from shiftclock.core.models import TimeEntry


class EntryCollection:
    """Append-only store of committed entries.

    Readers never see the live list: ``snapshot()`` returns an immutable tuple,
    so an aggregation running over a snapshot is unaffected by later appends.
    Replacement (after reconciliation swaps a local id for a server id) builds
    a new list instead of mutating the old one.
    """

    def __init__(self, entries: Optional[Iterable[TimeEntry]] = None):
        self._entries: tuple[TimeEntry, ...] = tuple(entries or ())
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self):  # type: ignore[no-untyped-def]
        return iter(self._entries)

    def snapshot(self) -> tuple[TimeEntry, ...]:
        return self._entries

    def append(self, entry: TimeEntry) -> None:
        with self._lock:
            self._entries = self._entries + (entry,)

    def extend(self, entries: Iterable[TimeEntry]) -> None:
        with self._lock:
            self._entries = self._entries + tuple(entries)

    def replace(self, old_id: str, entry: TimeEntry) -> bool:
        """Replace the entry with id ``old_id``; append if it is not present.

        Returns:
            True if an existing entry was replaced
        """
        with self._lock:
            replaced = False
            updated = []
            for existing in self._entries:
                if existing.id == old_id:
                    updated.append(entry)
                    replaced = True
                else:
                    updated.append(existing)
            if not replaced:
                updated.append(entry)
            self._entries = tuple(updated)
            return replaced

    def remove(self, entry_id: str) -> bool:
        with self._lock:
            remaining = tuple(e for e in self._entries if e.id != entry_id)
            removed = len(remaining) != len(self._entries)
            self._entries = remaining
            return removed

    def get(self, entry_id: str) -> Optional[TimeEntry]:
        for entry in self._entries:
            if entry.id == entry_id:
                return entry
        return None

    def pending(self) -> list[TimeEntry]:
        return [e for e in self._entries if e.pending_sync]
