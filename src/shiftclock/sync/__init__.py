"""Offline-tolerant persistence of time entries."""

from shiftclock.sync.queue import Operation, ReconcileReport, SyncQueue

__all__ = ["Operation", "ReconcileReport", "SyncQueue"]
