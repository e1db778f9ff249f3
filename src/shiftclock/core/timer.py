"""Timer session state machine.

One ``TimerController`` owns the active session of one user. Commands are
coroutines scheduled on the caller's asyncio loop; the only suspension points
are the persistence calls made through the ``SyncQueue``.
"""

import asyncio
import logging
from dataclasses import replace
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Callable, Optional

from shiftclock.core.collection import EntryCollection
from shiftclock.core.duration import (
    billable_amount,
    elapsed_seconds,
    finalize_duration,
    parse_manual_duration,
)
from shiftclock.core.errors import (
    ConflictError,
    NotFoundError,
    TransportError,
    ValidationError,
)
from shiftclock.core.models import (
    EntryStatus,
    TimeEntry,
    UserRecord,
    make_reference,
    new_local_id,
)
from shiftclock.core.shift_policy import ShiftPolicy
from shiftclock.core.storage import LocalStore
from shiftclock.service.base import ShiftDirectory
from shiftclock.sync.queue import Operation, SyncQueue

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

OFFLINE_WARNING = "Service unreachable: entry saved locally and will sync when the connection returns"


class TimerState(str, Enum):
    """States of a timer session."""

    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    COMMITTED = "committed"


class TimerController:
    """Session state machine for a single user.

    Idle -> Running (start) -> Paused (pause) -> Running (resume) ->
    Committed (stop). A new ``start`` after Committed begins a fresh session.
    Manual entries bypass the session entirely.
    """

    def __init__(
        self,
        user_id: str,
        sync: SyncQueue,
        directory: ShiftDirectory,
        policy: Optional[ShiftPolicy] = None,
        entries: Optional[EntryCollection] = None,
        clock: Clock = datetime.now,
        tick_interval: float = 1.0,
        on_tick: Optional[Callable[[int], None]] = None,
        on_warning: Optional[Callable[[str], None]] = None,
    ):
        """Initialize timer controller.

        Args:
            user_id: User whose session this controller owns
            sync: Persistence path (remote with local fallback)
            directory: Source of the user's shift and default rate
            policy: Shift policy. Creates default if None.
            entries: Collection receiving committed entries
            clock: Time source
            tick_interval: Seconds between display ticks
            on_tick: Called with the visible elapsed seconds on every tick
            on_warning: Called with non-blocking warnings (degraded mode)
        """
        self.user_id = user_id
        self.sync = sync
        self.directory = directory
        self.policy = policy or ShiftPolicy()
        self.entries = entries
        self.clock = clock
        self.tick_interval = tick_interval
        self.on_tick = on_tick
        self.on_warning = on_warning

        self.state = TimerState.IDLE
        self.warnings: list[str] = []
        self.display_seconds = 0
        self._entry: Optional[TimeEntry] = None
        self._accumulated = 0
        self._segment_start: Optional[datetime] = None
        self._in_flight = False
        self._ticker: Optional[asyncio.Task] = None  # type: ignore[type-arg]
        self._user: Optional[UserRecord] = None

    # Queries

    def current_session(self) -> Optional[TimeEntry]:
        """The Running or Paused entry, or None."""
        if self.state in (TimerState.RUNNING, TimerState.PAUSED):
            return self._entry
        return None

    @property
    def last_entry(self) -> Optional[TimeEntry]:
        """Entry of the current or most recently committed session."""
        return self._entry

    @property
    def busy(self) -> bool:
        """Whether a persistence call is in flight."""
        return self._in_flight

    def elapsed_seconds(self) -> int:
        """Seconds shown on the visible clock."""
        if self.state == TimerState.RUNNING and self._segment_start is not None:
            return self._accumulated + elapsed_seconds(self._segment_start, self.clock())
        if self.state == TimerState.COMMITTED and self._entry is not None:
            return self._entry.duration
        return self._accumulated

    # Commands

    async def start(
        self,
        project: Any,
        description: str,
        task: Any = None,
        billable: bool = True,
        hourly_rate: Any = None,
    ) -> TimeEntry:
        """Start a new session.

        Args:
            project: Project id or project object
            description: What is being worked on (required)
            task: Task id or task object
            billable: Whether the time is billable
            hourly_rate: Rate override; defaults to the user's rate

        Returns:
            The In Progress entry (pending_sync if the service was unreachable)

        Raises:
            ValidationError: If project or description is missing
            ConflictError: If a session is active or a command is in flight
            RemoteRejectionError: If the service rejected the start
        """
        self._guard_in_flight()
        if self.state in (TimerState.RUNNING, TimerState.PAUSED):
            active = self._entry.description if self._entry else ""
            raise ConflictError(f"Session already running: {active}. Stop it first.")
        project_ref, task_ref, description = self._validate_fields(project, task, description)
        rate_override = self._parse_rate(hourly_rate)

        self._in_flight = True
        try:
            user = await self._lookup_user()
            tracking_type = self.policy.resolve_or_default(user)
            entry = TimeEntry(
                user=user.as_reference(),
                project=project_ref,
                task=task_ref,
                description=description,
                start_time=self.clock(),
                tracking_type=tracking_type,
                billable=billable,
                hourly_rate=self._effective_rate(billable, rate_override, user),
                status=EntryStatus.IN_PROGRESS,
            )
            persisted = await self.sync.persist(Operation.START, entry)
        finally:
            self._in_flight = False

        if persisted.pending_sync:
            self._warn("Service unreachable: timer started in offline mode")

        self._entry = persisted
        self._accumulated = 0
        self._segment_start = persisted.start_time
        self.state = TimerState.RUNNING
        self._start_ticker()
        logger.info(f"Started {persisted.tracking_type.value} session {persisted.id} for {self.user_id}")
        return persisted

    async def pause(self) -> TimeEntry:
        """Freeze the visible clock. Nothing is persisted.

        Raises:
            ConflictError: If the session is not Running
        """
        self._guard_in_flight()
        if self.state != TimerState.RUNNING or self._entry is None:
            raise ConflictError("No running session to pause")

        self._accumulated = self.elapsed_seconds()
        self._segment_start = None
        self.state = TimerState.PAUSED
        self._stop_ticker()
        return self._entry

    async def resume(self) -> TimeEntry:
        """Restart the visible clock from the accumulated value.

        Raises:
            ConflictError: If the session is not Paused
        """
        self._guard_in_flight()
        if self.state != TimerState.PAUSED or self._entry is None:
            raise ConflictError("No paused session to resume")

        self._segment_start = self.clock()
        self.state = TimerState.RUNNING
        self._start_ticker()
        return self._entry

    async def stop(self) -> TimeEntry:
        """Finalize and commit the session.

        Duration is measured from the recorded start to now, amounts are
        computed here once, then the completion is persisted (remotely or via
        the local fallback) before the controller reports Committed.

        Returns:
            The Completed entry

        Raises:
            ConflictError: If there is no active session, it is already
                committed, or a command is in flight
            RemoteRejectionError: If the service rejected the completion
        """
        self._guard_in_flight()
        if self.state == TimerState.COMMITTED:
            raise ConflictError("Session already committed")
        if self._entry is None or self.state == TimerState.IDLE:
            raise ConflictError("No active session to stop")

        entry = self._entry
        end = self.clock()
        duration = finalize_duration(entry.start_time, end)
        final = replace(
            entry,
            end_time=end,
            duration=duration,
            status=EntryStatus.COMPLETED,
            total_amount=(
                billable_amount(duration, entry.hourly_rate or 0) if entry.billable else None
            ),
            updated_at=end,
        )

        self._in_flight = True
        try:
            try:
                committed = await self.sync.persist(Operation.STOP, final)
            except NotFoundError as e:
                committed = self.sync.enqueue(
                    replace(final, id=new_local_id()), Operation.CREATE, reason=str(e)
                )
                self._warn(
                    f"Entry {entry.id} is unknown to the service; "
                    f"saved locally as {committed.id} and queued for sync"
                )
            else:
                if committed.pending_sync:
                    self._warn(OFFLINE_WARNING)
        finally:
            self._in_flight = False

        self._stop_ticker()
        self._entry = committed
        self._accumulated = committed.duration
        self._segment_start = None
        self.state = TimerState.COMMITTED
        if self.entries is not None:
            self.entries.append(committed)
        logger.info(f"Committed session {committed.id}: {committed.duration}s")
        return committed

    async def manual_entry(
        self,
        project: Any,
        description: str,
        duration_text: str,
        task: Any = None,
        billable: bool = True,
        hourly_rate: Any = None,
    ) -> TimeEntry:
        """Record a finished entry from a typed duration.

        The entry ends now and starts ``duration`` seconds earlier. The
        running session, if any, is not touched.

        Args:
            project: Project id or project object
            description: What the time was spent on
            duration_text: HH:MM or HH:MM:SS
            task: Task id or task object
            billable: Whether the time is billable
            hourly_rate: Rate override; defaults to the user's rate

        Returns:
            The Completed entry

        Raises:
            ValidationError: If fields are missing or the duration is malformed
            ConflictError: If a command is in flight
            RemoteRejectionError: If the service rejected the entry
        """
        self._guard_in_flight()
        project_ref, task_ref, description = self._validate_fields(project, task, description)
        duration = parse_manual_duration(duration_text)
        if duration == 0:
            raise ValidationError("Duration must be greater than zero")
        rate_override = self._parse_rate(hourly_rate)

        self._in_flight = True
        try:
            user = await self._lookup_user()
            tracking_type = self.policy.resolve_or_default(user)
            self.policy.validate_span(tracking_type, duration)

            now = self.clock()
            rate = self._effective_rate(billable, rate_override, user)
            entry = TimeEntry(
                user=user.as_reference(),
                project=project_ref,
                task=task_ref,
                description=description,
                start_time=now - timedelta(seconds=duration),
                end_time=now,
                duration=duration,
                tracking_type=tracking_type,
                billable=billable,
                hourly_rate=rate,
                total_amount=billable_amount(duration, rate or 0) if billable else None,
                status=EntryStatus.COMPLETED,
                is_manual_entry=True,
            )
            committed = await self.sync.persist(Operation.CREATE, entry)
        finally:
            self._in_flight = False

        if committed.pending_sync:
            self._warn(OFFLINE_WARNING)
        if self.entries is not None:
            self.entries.append(committed)
        logger.info(f"Recorded manual entry {committed.id}: {committed.duration}s")
        return committed

    async def cancel(self) -> TimeEntry:
        """Discard the active session without committing it.

        Returns:
            The discarded entry

        Raises:
            ConflictError: If there is no active session, a command is in
                flight, or the service cannot be reached to delete it
        """
        self._guard_in_flight()
        entry = self.current_session()
        if entry is None:
            raise ConflictError("No active session to cancel")

        self._in_flight = True
        try:
            await self.sync.delete(entry)
        except TransportError as e:
            raise ConflictError(
                f"Cannot cancel while the service is unreachable ({e}); stop the session instead"
            )
        finally:
            self._in_flight = False

        self._stop_ticker()
        self._entry = None
        self._accumulated = 0
        self._segment_start = None
        self.state = TimerState.IDLE
        logger.info(f"Cancelled session {entry.id}")
        return entry

    async def edit_entry(
        self,
        entry: TimeEntry,
        project: Any = None,
        description: Optional[str] = None,
        duration_text: Optional[str] = None,
        task: Any = None,
        billable: Optional[bool] = None,
        hourly_rate: Any = None,
    ) -> TimeEntry:
        """Change fields of a committed entry.

        Only the given fields change. A new duration keeps the start time and
        moves the end. The amount is recomputed from the resulting duration,
        rate and billable flag.

        Args:
            entry: Completed entry to change
            project: New project id or project object
            description: New description
            duration_text: New duration as HH:MM or HH:MM:SS
            task: New task id or task object
            billable: New billable flag
            hourly_rate: New hourly rate

        Returns:
            The updated entry (pending_sync set if the service was unreachable)

        Raises:
            ValidationError: If a field is malformed or nothing would change
            ConflictError: If the entry is still running or a command is in flight
            RemoteRejectionError: If the service rejected the change
        """
        self._guard_in_flight()
        if entry.status != EntryStatus.COMPLETED:
            raise ConflictError(f"Entry {entry.id} is still running; stop it before editing")

        changes: dict[str, Any] = {}
        if project is not None:
            project_ref = make_reference(project)
            if project_ref is None:
                raise ValidationError("Project is required")
            changes["project"] = project_ref
        if task is not None:
            changes["task"] = make_reference(task)
        if description is not None:
            if not description.strip():
                raise ValidationError("Description is required")
            changes["description"] = description.strip()
        if duration_text is not None:
            duration = parse_manual_duration(duration_text)
            if duration == 0:
                raise ValidationError("Duration must be greater than zero")
            self.policy.validate_span(entry.tracking_type, duration)
            changes["duration"] = duration
            changes["end_time"] = entry.start_time + timedelta(seconds=duration)
        if billable is not None:
            changes["billable"] = billable
        rate = self._parse_rate(hourly_rate)
        if rate is not None:
            changes["hourly_rate"] = rate
        if not changes:
            raise ValidationError("Nothing to change")

        updated = replace(entry, **changes)
        self._in_flight = True
        try:
            if updated.billable and updated.hourly_rate is None:
                updated.hourly_rate = (await self._lookup_user()).hourly_rate
            updated.total_amount = (
                billable_amount(updated.duration, updated.hourly_rate or 0)
                if updated.billable
                else None
            )
            committed = await self.sync.persist(Operation.UPDATE, updated)
        finally:
            self._in_flight = False

        if committed.pending_sync:
            self._warn(OFFLINE_WARNING)
        if self.entries is not None:
            self.entries.replace(entry.id, committed)
        if self._entry is not None and self._entry.id == entry.id:
            self._entry = committed
        logger.info(f"Updated entry {committed.id}: {', '.join(sorted(changes))}")
        return committed

    async def delete_entry(self, entry: TimeEntry) -> None:
        """Delete a committed entry, or drop it from the outbox if it never synced.

        Raises:
            ConflictError: If the entry is the active session, a command is in
                flight, or the service cannot be reached to delete it
            RemoteRejectionError: If the service refused the deletion
        """
        self._guard_in_flight()
        active = self.current_session()
        if active is not None and active.id == entry.id:
            raise ConflictError("Entry is the active session; use cancel instead")

        self._in_flight = True
        try:
            await self.sync.delete(entry)
        except TransportError as e:
            raise ConflictError(f"Cannot delete {entry.id} while the service is unreachable ({e})")
        finally:
            self._in_flight = False

        logger.info(f"Deleted entry {entry.id}")

    # Session persistence

    def snapshot(self) -> dict[str, Any]:
        """Serializable view of the session, for saving across restarts."""
        return {
            "user_id": self.user_id,
            "state": self.state.value,
            "entry": self._entry.to_dict() if self._entry else None,
            "accumulated_seconds": self._accumulated,
            "segment_start": self._segment_start.isoformat() if self._segment_start else None,
            "saved_at": self.clock().isoformat(),
        }

    def restore(self, data: dict[str, Any]) -> None:
        """Load a session previously produced by ``snapshot``.

        Raises:
            ConflictError: If this controller already has an active session
        """
        if self.current_session() is not None:
            raise ConflictError("Cannot restore over an active session")

        entry_data = data.get("entry")
        self._entry = TimeEntry.from_dict(entry_data) if entry_data else None
        self.state = TimerState(data.get("state", TimerState.IDLE.value))
        if self._entry is None:
            self.state = TimerState.IDLE
        self._accumulated = int(data.get("accumulated_seconds") or 0)
        segment_start = data.get("segment_start")
        self._segment_start = datetime.fromisoformat(segment_start) if segment_start else None
        if self.state == TimerState.RUNNING and self._segment_start is None and self._entry:
            self._segment_start = self._entry.start_time
        if self.state == TimerState.RUNNING:
            self._start_ticker()

    def close(self) -> None:
        """Stop background work owned by the controller."""
        self._stop_ticker()

    # Internals

    def _guard_in_flight(self) -> None:
        if self._in_flight:
            raise ConflictError("Another command is still being processed for this user")

    @staticmethod
    def _validate_fields(project: Any, task: Any, description: Optional[str]):  # type: ignore[no-untyped-def]
        project_ref = make_reference(project)
        if project_ref is None:
            raise ValidationError("Project is required")
        if not description or not description.strip():
            raise ValidationError("Description is required")
        return project_ref, make_reference(task), description.strip()

    @staticmethod
    def _parse_rate(hourly_rate: Any) -> Optional[Decimal]:
        if hourly_rate is None or hourly_rate == "":
            return None
        try:
            rate = Decimal(str(hourly_rate))
        except InvalidOperation:
            raise ValidationError(f"Invalid hourly rate: {hourly_rate!r}")
        if not rate.is_finite() or rate < 0:
            raise ValidationError(f"Invalid hourly rate: {hourly_rate!r}")
        return rate

    @staticmethod
    def _effective_rate(
        billable: bool, override: Optional[Decimal], user: UserRecord
    ) -> Optional[Decimal]:
        if not billable:
            return None
        if override is not None:
            return override
        return user.hourly_rate if user.hourly_rate is not None else Decimal("0")

    async def _lookup_user(self) -> UserRecord:
        """Fetch the user record, reusing the last good one if the directory is down."""
        try:
            self._user = await self.directory.get_user(self.user_id)
        except (TransportError, NotFoundError) as e:
            logger.warning(f"Could not load user {self.user_id} from directory: {e}")
            if self._user is None:
                return UserRecord(id=self.user_id)
        return self._user

    def _warn(self, message: str) -> None:
        self.warnings.append(message)
        logger.warning(message)
        if self.on_warning is not None:
            self.on_warning(message)

    def _start_ticker(self) -> None:
        self._stop_ticker()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._ticker = loop.create_task(self._tick())

    def _stop_ticker(self) -> None:
        if self._ticker is not None and not self._ticker.done():
            self._ticker.cancel()
        self._ticker = None

    async def _tick(self) -> None:
        while self.state == TimerState.RUNNING:
            self.display_seconds = self.elapsed_seconds()
            if self.on_tick is not None:
                self.on_tick(self.display_seconds)
            await asyncio.sleep(self.tick_interval)


class TimerRegistry:
    """Hands out one TimerController per user and saves sessions across restarts."""

    def __init__(
        self,
        sync: SyncQueue,
        directory: ShiftDirectory,
        store: LocalStore,
        policy: Optional[ShiftPolicy] = None,
        entries: Optional[EntryCollection] = None,
        clock: Clock = datetime.now,
        tick_interval: float = 1.0,
        on_warning: Optional[Callable[[str], None]] = None,
    ):
        self.sync = sync
        self.directory = directory
        self.store = store
        self.policy = policy or ShiftPolicy()
        self.entries = entries
        self.clock = clock
        self.tick_interval = tick_interval
        self.on_warning = on_warning
        self._controllers: dict[str, TimerController] = {}

    def open(self, user_id: str) -> TimerController:
        """Get the user's controller, restoring a saved session on first use."""
        controller = self._controllers.get(user_id)
        if controller is not None:
            return controller

        controller = TimerController(
            user_id,
            sync=self.sync,
            directory=self.directory,
            policy=self.policy,
            entries=self.entries,
            clock=self.clock,
            tick_interval=self.tick_interval,
            on_warning=self.on_warning,
        )
        saved = self.store.load_session(user_id)
        if saved:
            controller.restore(saved)
            logger.debug(f"Restored {controller.state.value} session for {user_id}")
        self._controllers[user_id] = controller
        return controller

    def get(self, user_id: str) -> Optional[TimerController]:
        return self._controllers.get(user_id)

    def close(self, user_id: str) -> None:
        """Save (or clear) the user's session and release the controller."""
        controller = self._controllers.pop(user_id, None)
        if controller is None:
            return
        controller.close()
        if controller.current_session() is not None:
            self.store.save_session(user_id, controller.snapshot())
        else:
            self.store.clear_session(user_id)

    def close_all(self) -> None:
        for user_id in list(self._controllers):
            self.close(user_id)
