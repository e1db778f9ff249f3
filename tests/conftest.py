"""Pytest configuration and shared fixtures."""

import tempfile
from pathlib import Path

import pytest  # type: ignore[import-not-found]

from helpers import USERS, FakeTimeEntryService, ManualClock
from shiftclock.core.collection import EntryCollection
from shiftclock.core.shift_policy import ShiftPolicy
from shiftclock.core.storage import LocalStore
from shiftclock.core.timer import TimerController
from shiftclock.service.directory import StaticShiftDirectory
from shiftclock.sync.queue import SyncQueue


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest."""
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "slow: Slow tests")


@pytest.fixture
def temp_dir() -> Path:
    """Create temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def store(temp_dir: Path) -> LocalStore:
    return LocalStore(temp_dir / "data")


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def service(clock: ManualClock) -> FakeTimeEntryService:
    return FakeTimeEntryService(clock)


@pytest.fixture
def entries() -> EntryCollection:
    return EntryCollection()


@pytest.fixture
def sync(service: FakeTimeEntryService, store: LocalStore, entries: EntryCollection) -> SyncQueue:
    return SyncQueue(service, store, timeout=2.0, entries=entries)


@pytest.fixture
def directory() -> StaticShiftDirectory:
    return StaticShiftDirectory(USERS)


@pytest.fixture
def policy() -> ShiftPolicy:
    return ShiftPolicy()


@pytest.fixture
def controller(
    sync: SyncQueue,
    directory: StaticShiftDirectory,
    policy: ShiftPolicy,
    entries: EntryCollection,
    clock: ManualClock,
) -> TimerController:
    """Timer controller for user u1 (Daily shift, 50/h)."""
    return TimerController(
        "u1",
        sync=sync,
        directory=directory,
        policy=policy,
        entries=entries,
        clock=clock,
    )


