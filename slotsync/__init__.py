"""Client-side sync engine for shared time-slot availability grids."""

from slotsync.errors import (
    EmptyFinalizeError,
    EventFinalizedError,
    IdentityTakenError,
    NetworkError,
    NotFoundError,
    PermissionDeniedError,
    SyncError,
)
from slotsync.models import Event, EventType, LocalSnapshot, NewEvent, TimeSlot
from slotsync.reconcile import Reconciler
from slotsync.scheduler import SyncScheduler, SyncState
from slotsync.store import EventStore, HttpEventStore, MemoryEventStore

__all__ = [
    "EmptyFinalizeError",
    "Event",
    "EventFinalizedError",
    "EventStore",
    "EventType",
    "HttpEventStore",
    "IdentityTakenError",
    "LocalSnapshot",
    "MemoryEventStore",
    "NetworkError",
    "NewEvent",
    "NotFoundError",
    "PermissionDeniedError",
    "Reconciler",
    "SyncError",
    "SyncScheduler",
    "SyncState",
    "TimeSlot",
]
