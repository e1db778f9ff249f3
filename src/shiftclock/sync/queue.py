"""Remote persistence with an offline fallback and FIFO reconciliation."""

import asyncio
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Awaitable, Optional, TypeVar

from shiftclock.core.collection import EntryCollection
from shiftclock.core.errors import NotFoundError, RemoteRejectionError, TransportError
from shiftclock.core.models import EntryStatus, Resolved, TimeEntry, new_local_id
from shiftclock.core.storage import LocalStore
from shiftclock.service.base import EntryFilters, TimeEntryService
from shiftclock.service.schemas import TimeEntryPayload

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Operation(str, Enum):
    """Remote operations the queue knows how to perform and replay."""

    START = "start"
    STOP = "stop"
    CREATE = "create"
    UPDATE = "update"


@dataclass
class ReconcileReport:
    """Outcome of one reconciliation pass.

    Attributes:
        synced: (old id, confirmed entry) pairs that reached the service
        failed: (entry id, error) pairs the service rejected; still queued
        deferred: Ids of local sessions still running; synced once stopped
        remaining: Outbox size after the pass
        interrupted: A transport failure ended the pass early
    """

    synced: list[tuple[str, TimeEntry]] = field(default_factory=list)
    failed: list[tuple[str, str]] = field(default_factory=list)
    deferred: list[str] = field(default_factory=list)
    remaining: int = 0
    interrupted: bool = False


class SyncQueue:
    """Wrap the time-entry service so that no session is lost to a network failure.

    Transport failures (unreachable host, timeout, 5xx) turn into a locally
    committed entry flagged ``pending_sync`` and written to the outbox.
    Rejections from a reachable server propagate unchanged.
    """

    def __init__(
        self,
        service: TimeEntryService,
        store: LocalStore,
        timeout: float = 15.0,
        auto_reconcile: bool = True,
        entries: Optional[EntryCollection] = None,
    ):
        """Initialize sync queue.

        Args:
            service: Remote time-entry service
            store: Local store holding the outbox
            timeout: Upper bound in seconds for each remote call
            auto_reconcile: Replay the outbox when connectivity comes back
            entries: Collection to update when queued entries get server ids
        """
        self.service = service
        self.store = store
        self.timeout = timeout
        self.auto_reconcile = auto_reconcile
        self.entries = entries
        # A non-empty outbox means an earlier run lost the service.
        self.online = not self.store.load_pending()
        self._reconciling = False

    async def _call(self, awaitable: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise TransportError(f"Service call timed out after {self.timeout}s") from e

    async def persist(self, operation: Operation, entry: TimeEntry) -> TimeEntry:
        """Persist an entry remotely, falling back to the local outbox.

        Args:
            operation: What to do with the entry
            entry: Client-side entry (for STOP: already finalized)

        Returns:
            Server-confirmed entry, or a local entry with pending_sync set

        Raises:
            RemoteRejectionError: If the service rejected the operation
        """
        try:
            remote = await self._call(self._remote(operation, entry))
        except TransportError as e:
            self.online = False
            return self.enqueue(entry, operation, reason=str(e))

        confirmed = self._merge(operation, entry, remote)
        if entry.pending_sync or entry.is_local:
            self.store.remove_pending(entry.id)

        if not self.online:
            self.online = True
            logger.info("Time-entry service reachable again")
            if self.auto_reconcile:
                await self.reconcile()

        return confirmed

    async def _remote(self, operation: Operation, entry: TimeEntry) -> TimeEntry:
        if operation == Operation.START:
            return await self.service.start_timer(
                entry.user_id,
                entry.project,
                entry.task,
                entry.description,
                entry.tracking_type,
                entry.billable,
                entry.hourly_rate,
            )
        if operation in (Operation.STOP, Operation.UPDATE):
            # The service never saw an entry that was created offline.
            if entry.is_local:
                return await self.service.create_time_entry(TimeEntryPayload.from_entry(entry).to_wire())
            if operation == Operation.STOP:
                return await self.service.stop_timer(entry.id)
            return await self.service.update_time_entry(
                entry.id, TimeEntryPayload.from_entry(entry).to_wire()
            )
        return await self.service.create_time_entry(TimeEntryPayload.from_entry(entry).to_wire())

    @staticmethod
    def _merge(operation: Operation, local: TimeEntry, remote: TimeEntry) -> TimeEntry:
        """Combine the server's answer with what the client already computed.

        The server contributes its id, status and any resolved references.
        Timing and amounts stay client-side once committed; on START the
        server's start time is taken.
        """
        merged = replace(
            local,
            id=remote.id,
            status=remote.status,
            user=remote.user if isinstance(remote.user, Resolved) else local.user,
            project=remote.project if isinstance(remote.project, Resolved) else local.project,
            task=remote.task if isinstance(remote.task, Resolved) else local.task,
            pending_sync=False,
            updated_at=datetime.now(),
        )
        if operation == Operation.START:
            merged.start_time = remote.start_time or local.start_time
            merged.status = EntryStatus.IN_PROGRESS
        elif local.status == EntryStatus.COMPLETED:
            merged.status = EntryStatus.COMPLETED
            if remote.duration and remote.duration != local.duration:
                logger.debug(
                    f"Service reports {remote.duration}s for {remote.id}, "
                    f"keeping client-computed {local.duration}s"
                )
        return merged

    def enqueue(self, entry: TimeEntry, operation: Operation, reason: str = "") -> TimeEntry:
        """Commit an entry locally and queue it for the service.

        Entries without a server id get a local one; entries the server
        already knows keep theirs so reconciliation can complete them.

        Returns:
            The locally committed entry (pending_sync is True)
        """
        local = replace(entry, pending_sync=True, updated_at=datetime.now())
        if operation in (Operation.START, Operation.CREATE) and not local.is_local:
            local.id = new_local_id()

        queued_as = operation
        if operation in (Operation.STOP, Operation.UPDATE) and local.is_local:
            queued_as = Operation.CREATE

        self.store.save_pending(local, queued_as.value, last_error=reason)
        logger.warning(
            f"Service unreachable ({reason}); {operation.value} of entry {local.id} "
            f"committed locally and queued for sync"
        )
        return local

    async def reconcile(self) -> ReconcileReport:
        """Replay queued entries against the service, oldest first.

        Returns:
            Report of what was synced, rejected, or deferred
        """
        report = ReconcileReport()
        if self._reconciling:
            logger.debug("Reconciliation already running, skipping")
            return report

        self._reconciling = True
        try:
            for record in self.store.load_pending():
                entry = record.entry
                if entry.status != EntryStatus.COMPLETED:
                    report.deferred.append(entry.id)
                    continue

                try:
                    remote = await self._call(self._replay(entry))
                except TransportError as e:
                    self.online = False
                    report.interrupted = True
                    self.store.save_pending(entry, record.operation, record.attempts + 1, str(e))
                    logger.warning(f"Reconciliation interrupted, service unreachable: {e}")
                    break
                except RemoteRejectionError as e:
                    self.store.save_pending(entry, record.operation, record.attempts + 1, str(e))
                    report.failed.append((entry.id, str(e)))
                    logger.error(f"Service rejected queued entry {entry.id}: {e}")
                    continue

                self.online = True
                confirmed = self._merge(Operation.CREATE, entry, remote)
                self.store.remove_pending(entry.id)
                if self.entries is not None:
                    self.entries.replace(entry.id, confirmed)
                report.synced.append((entry.id, confirmed))

            report.remaining = len(self.store.load_pending())
        finally:
            self._reconciling = False

        if report.synced or report.failed or report.interrupted:
            logger.info(
                f"Reconciliation: {len(report.synced)} synced, {len(report.failed)} rejected, "
                f"{len(report.deferred)} deferred, {report.remaining} still queued"
            )
        return report

    async def _replay(self, entry: TimeEntry) -> TimeEntry:
        fields = TimeEntryPayload.from_entry(entry).to_wire()
        if entry.is_local:
            return await self.service.create_time_entry(fields)
        try:
            return await self.service.update_time_entry(entry.id, fields)
        except NotFoundError:
            logger.warning(f"Service lost entry {entry.id}; recreating it")
            fields.pop("_id", None)
            return await self.service.create_time_entry(fields)

    async def run_reconciler(self, interval: float, stop_event: asyncio.Event) -> None:
        """Reconcile every ``interval`` seconds until ``stop_event`` is set."""
        while not stop_event.is_set():
            await self.reconcile()
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                continue

    async def list_remote(self, filters: Optional[EntryFilters] = None) -> list[TimeEntry]:
        """List entries on the service, bounded by the call timeout.

        Raises:
            TransportError: If the service cannot be reached
        """
        return await self._call(self.service.list_time_entries(filters))

    async def find(self, entry_id: str, user_id: Optional[str] = None) -> TimeEntry:
        """Look an entry up in the outbox first, then on the service.

        Raises:
            NotFoundError: If neither the outbox nor the service has the entry
            TransportError: If the entry is not queued and the service cannot be reached
        """
        record = self.store.get_pending(entry_id)
        if record is not None:
            return record.entry
        for entry in await self.list_remote(EntryFilters(user_id=user_id)):
            if entry.id == entry_id:
                return entry
        raise NotFoundError(f"Time entry not found: {entry_id}")

    def pending(self) -> list[TimeEntry]:
        """Entries waiting for the service, oldest first."""
        return [record.entry for record in self.store.load_pending()]

    def discard(self, entry_id: str) -> bool:
        """Drop an unsynced entry locally.

        Returns:
            True if the entry was queued
        """
        removed = self.store.remove_pending(entry_id)
        if removed:
            if self.entries is not None:
                self.entries.remove(entry_id)
            logger.info(f"Discarded unsynced entry {entry_id}")
        return removed

    async def delete(self, entry: TimeEntry) -> None:
        """Delete an entry remotely, or locally if the service never saw it.

        Raises:
            TransportError: If the service cannot be reached to delete a synced entry
            RemoteRejectionError: If the service refused the deletion
        """
        if entry.is_local:
            self.discard(entry.id)
            return
        await self._call(self.service.delete_time_entry(entry.id))
        self.store.remove_pending(entry.id)
        if self.entries is not None:
            self.entries.remove(entry.id)
