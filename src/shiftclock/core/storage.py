"""Local storage for unsynced entries and saved timer sessions.

Pending entries live in a CSV outbox written atomically under a file lock;
each user's open session is a small JSON document in the state directory.
"""

import csv
import json
import logging
import os
import re
import shutil
import sys
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from shiftclock.core.models import TimeEntry

logger = logging.getLogger(__name__)

ENTRY_FIELDS = [
    "id",
    "user_id",
    "user_name",
    "project_id",
    "project_name",
    "task_id",
    "task_name",
    "description",
    "start_time",
    "end_time",
    "duration",
    "billable",
    "tracking_type",
    "status",
    "is_manual_entry",
    "hourly_rate",
    "total_amount",
    "pending_sync",
    "created_at",
    "updated_at",
]

OUTBOX_FIELDS = ENTRY_FIELDS + ["operation", "attempts", "last_error"]


def _lock_file(file_obj: Any, exclusive: bool = True) -> None:
    """Lock a file in a cross-platform way.

    Args:
        file_obj: File object to lock
        exclusive: If True, acquire exclusive lock; if False, acquire shared lock
    """
    if sys.platform == "win32":
        import msvcrt  # type: ignore[import-not-found]

        mode = msvcrt.LK_NBLCK if exclusive else msvcrt.LK_NBRLCK
        msvcrt.locking(file_obj.fileno(), mode, 1)
    else:
        import fcntl  # type: ignore[import-not-found]

        mode = fcntl.LOCK_EX if exclusive else fcntl.LOCK_SH
        fcntl.flock(file_obj.fileno(), mode)


def _unlock_file(file_obj: Any) -> None:
    """Unlock a file in a cross-platform way."""
    if sys.platform == "win32":
        import msvcrt  # type: ignore[import-not-found]

        msvcrt.locking(file_obj.fileno(), msvcrt.LK_UNLCK, 1)
    else:
        import fcntl  # type: ignore[import-not-found]

        fcntl.flock(file_obj.fileno(), fcntl.LOCK_UN)


@dataclass
class PendingRecord:
    """An outbox row: the entry plus what still has to happen to it remotely.

    Attributes:
        entry: Locally committed entry (pending_sync is True)
        operation: Operation that fell back ('start', 'stop', 'create', 'update')
        attempts: Reconciliation attempts so far
        last_error: Last reconciliation error message
    """

    entry: TimeEntry
    operation: str
    attempts: int = 0
    last_error: str = ""


class LocalStore:
    """Manages the pending-sync outbox and saved timer sessions."""

    def __init__(self, data_dir: Optional[Path] = None):
        """Initialize local store.

        Args:
            data_dir: Custom data directory. Defaults to ~/.shiftclock/data
        """
        if data_dir is None:
            data_dir = Path.home() / ".shiftclock" / "data"

        self.data_dir = data_dir
        self.outbox_file = self.data_dir / "outbox.csv"
        self.state_dir = self.data_dir.parent / "state"
        self.backup_dir = self.data_dir.parent / "backups"

        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.state_dir.mkdir(parents=True, exist_ok=True)
        self.backup_dir.mkdir(parents=True, exist_ok=True)

        if not self.outbox_file.exists():
            self._write_csv_atomic(self.outbox_file, OUTBOX_FIELDS, [])

    def _write_csv_atomic(
        self, file_path: Path, fieldnames: list[str], rows: list[dict[str, Any]]
    ) -> None:
        """Write CSV file atomically using temporary file and rename."""
        temp_file = file_path.with_suffix(".tmp")

        try:
            with open(temp_file, "w", newline="", encoding="utf-8") as f:
                _lock_file(f, exclusive=True)

                writer = csv.DictWriter(f, fieldnames=fieldnames)
                writer.writeheader()
                writer.writerows(rows)

                f.flush()
                os.fsync(f.fileno())

                _unlock_file(f)

            temp_file.replace(file_path)

        except Exception:
            if temp_file.exists():
                temp_file.unlink()
            raise

    def _read_csv(self, file_path: Path) -> list[dict[str, Any]]:
        """Read CSV file with a shared lock."""
        if not file_path.exists():
            return []

        with open(file_path, encoding="utf-8") as f:
            _lock_file(f, exclusive=False)
            try:
                reader = csv.DictReader(f)
                rows = list(reader)
            finally:
                _unlock_file(f)

        return rows

    def backup(self, label: Optional[str] = None) -> Path:
        """Copy the outbox and saved sessions into a backup directory.

        Args:
            label: Optional label for backup. Defaults to timestamp

        Returns:
            Path to backup directory
        """
        if label is None:
            label = datetime.now().strftime("%Y%m%d_%H%M%S")

        backup_path = self.backup_dir / label
        backup_path.mkdir(parents=True, exist_ok=True)

        if self.outbox_file.exists():
            shutil.copy2(self.outbox_file, backup_path / self.outbox_file.name)
        for session_file in self.state_dir.glob("session-*.json"):
            shutil.copy2(session_file, backup_path / session_file.name)

        return backup_path

    # Outbox operations

    def _read_outbox(self) -> list[tuple[dict[str, Any], PendingRecord]]:
        """Read the outbox, moving rows that no longer parse to the corrupt file.

        Returns:
            (raw row, record) pairs for every readable row, in file order
        """
        readable = []
        unreadable = []
        for row in self._read_csv(self.outbox_file):
            row = {k: v for k, v in row.items() if k is not None}
            try:
                record = PendingRecord(
                    entry=TimeEntry.from_dict(row),
                    operation=row.get("operation") or "create",
                    attempts=int(row.get("attempts") or 0),
                    last_error=row.get("last_error") or "",
                )
            except (KeyError, TypeError, ValueError) as e:
                logger.error(f"Outbox row {row.get('id')!r} is unreadable, moving it aside: {e}")
                unreadable.append(row)
                continue
            readable.append((row, record))

        if unreadable:
            corrupt = self.outbox_file.with_suffix(".csv.corrupt")
            self._write_csv_atomic(corrupt, OUTBOX_FIELDS, self._read_csv(corrupt) + unreadable)
            self._write_csv_atomic(self.outbox_file, OUTBOX_FIELDS, [row for row, _ in readable])
            logger.error(f"Moved {len(unreadable)} unreadable outbox row(s) to {corrupt}")

        return readable

    def save_pending(
        self,
        entry: TimeEntry,
        operation: str,
        attempts: int = 0,
        last_error: str = "",
    ) -> None:
        """Insert or update a pending entry in the outbox.

        Args:
            entry: Entry to queue
            operation: Remote operation still owed for this entry
            attempts: Reconciliation attempts so far
            last_error: Last reconciliation error
        """
        rows = [row for row, _ in self._read_outbox()]
        row = entry.to_dict()
        row.update({"operation": operation, "attempts": attempts, "last_error": last_error})

        for i, existing in enumerate(rows):
            if existing["id"] == entry.id:
                rows[i] = row
                break
        else:
            rows.append(row)

        self._write_csv_atomic(self.outbox_file, OUTBOX_FIELDS, rows)
        logger.debug(f"Queued {operation} for entry {entry.id}")

    def load_pending(self) -> list[PendingRecord]:
        """Load the outbox, oldest entry first.

        Rows that cannot be parsed are moved to ``outbox.csv.corrupt`` and
        logged, so one bad row never blocks the rest of the queue.

        Returns:
            Pending records ordered by entry creation time
        """
        records = [record for _, record in self._read_outbox()]
        records.sort(key=lambda r: r.entry.created_at)
        return records

    def get_pending(self, entry_id: str) -> Optional[PendingRecord]:
        for record in self.load_pending():
            if record.entry.id == entry_id:
                return record
        return None

    def remove_pending(self, entry_id: str) -> bool:
        """Remove an entry from the outbox.

        Returns:
            True if the entry was queued, False if not found
        """
        rows = [row for row, _ in self._read_outbox()]
        remaining = [r for r in rows if r["id"] != entry_id]

        if len(remaining) == len(rows):
            return False

        self._write_csv_atomic(self.outbox_file, OUTBOX_FIELDS, remaining)
        return True

    # Session operations

    def _session_file(self, user_id: str) -> Path:
        safe_id = re.sub(r"[^A-Za-z0-9_.-]", "_", user_id) or "_"
        return self.state_dir / f"session-{safe_id}.json"

    def save_session(self, user_id: str, data: dict[str, Any]) -> None:
        """Persist a user's open timer session."""
        session_file = self._session_file(user_id)
        temp_file = session_file.with_suffix(".tmp")
        with open(temp_file, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        temp_file.replace(session_file)
        logger.debug(f"Session saved for user {user_id}")

    def load_session(self, user_id: str) -> Optional[dict[str, Any]]:
        """Load a user's saved session, or None if there is none."""
        session_file = self._session_file(user_id)
        if not session_file.exists():
            return None

        try:
            with open(session_file, encoding="utf-8") as f:
                data: dict[str, Any] = json.load(f)
            return data
        except json.JSONDecodeError as e:
            corrupt = session_file.with_suffix(".json.corrupt")
            session_file.rename(corrupt)
            logger.error(f"Saved session for {user_id} is unreadable, moved to {corrupt}: {e}")
            return None

    def clear_session(self, user_id: str) -> bool:
        session_file = self._session_file(user_id)
        if session_file.exists():
            session_file.unlink()
            return True
        return False
