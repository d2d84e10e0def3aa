"""Polling and debounced-write scheduler for one open event view.

State machine:

    POLLING --intent--> WRITE_DEBOUNCING --quiet period--> WRITE_IN_FLIGHT
       ^                     ^    |  (intents restart the delay)     |
       |                     |    +----------------------------------+
       |                     +------ write done, intents arrived meanwhile
       +------------------------- write done (or failed: corrective fetch)

    any open state --finalize / finalized poll--> FINALIZED (terminal)
    any open state --NotFound / close()--------> STOPPED (terminal)

Polling is suspended for the whole debounce+write window so a read can
never overwrite an optimistic edit that has not been written yet, and at
most one write per scheduler is ever in flight.

All timers and network callbacks run on one asyncio loop; state is only
touched from that loop.
"""

import asyncio
import logging
from enum import Enum
from typing import Callable, Coroutine

from slotsync import availability
from slotsync.clock import Clock, LoopClock, TimerHandle
from slotsync.config import get_settings
from slotsync.errors import EventFinalizedError, NetworkError, NotFoundError, SyncError
from slotsync.models import Event, LocalSnapshot
from slotsync.reconcile import Reconciler, merge_marks
from slotsync.store import EventStore

logger = logging.getLogger("slotsync.scheduler")


class SyncState(str, Enum):
    IDLE = "idle"
    POLLING = "polling"
    WRITE_DEBOUNCING = "write_debouncing"
    WRITE_IN_FLIGHT = "write_in_flight"
    FINALIZED = "finalized"
    STOPPED = "stopped"


_TERMINAL = (SyncState.FINALIZED, SyncState.STOPPED)


def _marks(event: Event, identity: str) -> set[str]:
    return {s.time for s in event.time_slots if s.has(identity)}


class SyncScheduler:
    """Keeps a local snapshot of one event in sync with the store.

    Args:
        store: Store client used for every read and write.
        event_id: Event this view is bound to.
        identity: Display name of the local participant, or None while
            the user has not picked one (intents are rejected until then).
        clock: Timer source; defaults to the running asyncio loop.
        poll_interval: Seconds between polls (settings default).
        debounce: Quiet period before a write (settings default).
        on_change: Called with every new local snapshot.
        on_error: Called with each SyncError raised in the background.
        on_state: Called on every state transition.
    """

    def __init__(
        self,
        store: EventStore,
        event_id: str,
        identity: str | None = None,
        *,
        clock: Clock | None = None,
        poll_interval: float | None = None,
        debounce: float | None = None,
        on_change: Callable[[LocalSnapshot], None] | None = None,
        on_error: Callable[[SyncError], None] | None = None,
        on_state: Callable[[SyncState], None] | None = None,
    ) -> None:
        settings = get_settings().sync
        self.event_id = event_id
        self.identity = identity
        self.poll_interval = poll_interval if poll_interval is not None else settings.poll_interval_sec
        self.debounce = debounce if debounce is not None else settings.debounce_sec
        self._reconciler = Reconciler(store)
        self._store = store
        self._clock = clock or LoopClock()
        self._on_change = on_change
        self._on_error = on_error
        self._on_state = on_state

        self._state = SyncState.IDLE
        self._snapshot: LocalSnapshot | None = None
        self.error: SyncError | None = None

        self._poll_timer: TimerHandle | None = None
        self._debounce_timer: TimerHandle | None = None
        self._poll_task: asyncio.Task | None = None
        self._flush_task: asyncio.Task | None = None
        self._tasks: set[asyncio.Task] = set()

        # Bumped on every local edit; a poll started before an edit is stale.
        self._generation = 0
        # Keys edited while a write was in flight.
        self._late_keys: set[str] = set()
        self._finalizing = False
        self._closed = False

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def snapshot(self) -> LocalSnapshot | None:
        return self._snapshot

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Enter POLLING: fetch now, then every ``poll_interval`` seconds."""
        if self._state is not SyncState.IDLE:
            raise RuntimeError(f"scheduler already started (state={self._state.value})")
        logger.info("Sync started for event %s (poll=%.1fs debounce=%.1fs)", self.event_id, self.poll_interval, self.debounce)
        self._set_state(SyncState.POLLING)
        self._spawn_poll()
        self._arm_poll()

    async def close(self) -> None:
        """Tear down the view.

        Pending timers and reads are cancelled. A write already in flight
        is awaited, never cancelled; unflushed debounced edits are dropped.
        """
        if self._closed:
            return
        self._closed = True
        self._halt()
        if self._flush_task is not None and not self._flush_task.done():
            logger.debug("Waiting for in-flight write on %s before closing", self.event_id)
            await asyncio.gather(self._flush_task, return_exceptions=True)
        if self._state not in _TERMINAL:
            self._set_state(SyncState.STOPPED)
        logger.info("Sync closed for event %s", self.event_id)

    async def settle(self) -> None:
        """Wait until no poll or write task is outstanding."""
        while True:
            running = [t for t in self._tasks if not t.done()]
            if not running:
                return
            await asyncio.gather(*running, return_exceptions=True)

    # ------------------------------------------------------------------
    # intents
    # ------------------------------------------------------------------

    def toggle(self, slot_key: str, selected: bool) -> LocalSnapshot:
        """Optimistically mark/unmark the local identity and schedule a write."""
        current = self._editable_snapshot()
        updated = availability.toggle(current, self.identity, slot_key, selected)
        self._local_edit(current, updated)
        return updated

    def clear_mine(self) -> LocalSnapshot:
        current = self._editable_snapshot()
        updated = availability.clear_mine(current, self.identity)
        self._local_edit(current, updated)
        return updated

    async def finalize(self) -> Event:
        """Close the event on its best slots. Terminal for the scheduler.

        Permission and empty-grid checks run locally first; a rejected
        finalize never reaches the store.
        """
        current = self._editable_snapshot()
        availability.finalize(current, self.identity)

        self._finalizing = True
        try:
            self._halt()
            if self._flush_task is not None and not self._flush_task.done():
                await asyncio.gather(self._flush_task, return_exceptions=True)
                # the finished flush may have re-armed timers or a poll
                self._halt()
            if self._state in _TERMINAL:
                raise self.error or EventFinalizedError(event_id=self.event_id)
            closed = await self._finalize_write()
        finally:
            self._finalizing = False

        self._apply(LocalSnapshot(event=closed))
        self._enter_finalized()
        return closed

    async def _finalize_write(self) -> Event:
        self._set_state(SyncState.WRITE_IN_FLIGHT)
        try:
            return await self._reconciler.finalize(self._snapshot, self.identity)
        except NotFoundError as e:
            self._stop_with(e)
            raise
        except NetworkError as e:
            logger.warning("Finalize of %s failed: %s; resuming polling", self.event_id, e.detail)
            self._report(e)
            self._resume_polling(corrective=True)
            raise
        except SyncError:
            # rejected against the latest state (e.g. closed remotely)
            self._resume_polling(corrective=True)
            raise

    # ------------------------------------------------------------------
    # internals
    # ------------------------------------------------------------------

    def _editable_snapshot(self) -> LocalSnapshot:
        if self._closed or self._state is SyncState.STOPPED:
            raise self.error or SyncError(detail="Event view is closed", event_id=self.event_id)
        if self._finalizing:
            raise EventFinalizedError(detail="Event is being finalized", event_id=self.event_id)
        if self._snapshot is None:
            raise SyncError(detail="Event is not loaded yet", event_id=self.event_id)
        return self._snapshot

    def _local_edit(self, before: LocalSnapshot, after: LocalSnapshot) -> None:
        self._generation += 1
        self._apply(after)
        if self._state is SyncState.WRITE_IN_FLIGHT:
            # picked up again once the current write settles
            late = (after.pending - before.pending) | (
                _marks(before.event, self.identity) ^ _marks(after.event, self.identity)
            )
            self._late_keys |= late
            return
        if self._state in (SyncState.POLLING, SyncState.IDLE):
            self._cancel_poll()
        self._set_state(SyncState.WRITE_DEBOUNCING)
        self._arm_debounce()

    def _spawn(self, coro: Coroutine) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _arm_poll(self) -> None:
        if self._poll_timer is not None:
            self._poll_timer.cancel()
        self._poll_timer = self._clock.call_later(self.poll_interval, self._on_poll_timer)

    def _on_poll_timer(self) -> None:
        self._poll_timer = None
        if self._state is not SyncState.POLLING:
            return
        self._spawn_poll()
        self._arm_poll()

    def _spawn_poll(self, corrective: bool = False) -> None:
        if self._poll_task is not None and not self._poll_task.done():
            logger.debug("Previous poll for %s still running; skipping tick", self.event_id)
            return
        self._poll_task = self._spawn(self._poll(corrective))

    async def _poll(self, corrective: bool) -> None:
        generation = self._generation
        try:
            event = await self._store.get_event(self.event_id)
        except NotFoundError as e:
            self._stop_with(e)
            return
        except SyncError as e:
            logger.warning("Poll for %s failed: %s", self.event_id, e.detail)
            self._report(e)
            return
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception("Unexpected error polling %s", self.event_id)
            self._report(NetworkError(detail=str(e), event_id=self.event_id))
            return

        if self._state is not SyncState.POLLING or generation != self._generation:
            logger.debug("Discarding stale poll result for %s", self.event_id)
            return
        if corrective:
            logger.info("Corrective fetch replaced local state for %s", self.event_id)
        self.error = None
        self._apply(LocalSnapshot(event=event))
        if event.is_finalized:
            self._enter_finalized()

    def _arm_debounce(self) -> None:
        if self._debounce_timer is not None:
            self._debounce_timer.cancel()
        self._debounce_timer = self._clock.call_later(self.debounce, self._on_debounce)

    def _on_debounce(self) -> None:
        self._debounce_timer = None
        if self._state is not SyncState.WRITE_DEBOUNCING:
            return
        self._set_state(SyncState.WRITE_IN_FLIGHT)
        self._flush_task = self._spawn(self._flush())

    async def _flush(self) -> None:
        sent = self._snapshot
        self._late_keys = set()
        try:
            merged = await self._reconciler.flush(sent, self.identity)
        except NotFoundError as e:
            self._stop_with(e)
            return
        except Exception as e:
            error = e if isinstance(e, SyncError) else NetworkError(detail=str(e), event_id=self.event_id)
            if not isinstance(e, SyncError):
                logger.exception("Unexpected error writing %s", self.event_id)
            else:
                logger.warning("Write for %s failed: %s; refetching", self.event_id, error.detail)
            self._report(error)
            # unflushed local marks are discarded by the corrective fetch
            self._late_keys = set()
            if not self._closed:
                self._resume_polling(corrective=True)
            return

        self.error = None
        if merged.is_finalized:
            self._apply(LocalSnapshot(event=merged))
            self._enter_finalized()
            return

        if self._late_keys and not self._closed:
            local = self._snapshot
            layered = merge_marks(merged, local.event, self.identity)
            self._apply(LocalSnapshot(event=layered, pending=frozenset(self._late_keys)))
            self._late_keys = set()
            self._set_state(SyncState.WRITE_DEBOUNCING)
            self._arm_debounce()
            return

        self._apply(LocalSnapshot(event=merged))
        if not self._closed:
            self._resume_polling(corrective=False)

    def _resume_polling(self, corrective: bool) -> None:
        if self._closed or self._state in _TERMINAL:
            return
        self._set_state(SyncState.POLLING)
        self._arm_poll()
        if corrective:
            self._spawn_poll(corrective=True)

    def _cancel_poll(self) -> None:
        if self._poll_timer is not None:
            self._poll_timer.cancel()
            self._poll_timer = None
        if self._poll_task is not None and not self._poll_task.done():
            self._poll_task.cancel()
        self._poll_task = None

    def _halt(self) -> None:
        self._cancel_poll()
        if self._debounce_timer is not None:
            self._debounce_timer.cancel()
            self._debounce_timer = None

    def _enter_finalized(self) -> None:
        self._halt()
        self._set_state(SyncState.FINALIZED)
        logger.info("Event %s is finalized; polling stopped", self.event_id)

    def _stop_with(self, error: SyncError) -> None:
        self._halt()
        self.error = error
        self._set_state(SyncState.STOPPED)
        logger.warning("Sync for %s stopped: %s", self.event_id, error.detail)
        self._report(error)

    def _set_state(self, state: SyncState) -> None:
        if state is self._state:
            return
        logger.debug("Sync %s: %s -> %s", self.event_id, self._state.value, state.value)
        self._state = state
        if self._on_state is not None:
            self._notify(self._on_state, state)

    def _apply(self, snapshot: LocalSnapshot) -> None:
        self._snapshot = snapshot
        if self._on_change is not None:
            self._notify(self._on_change, snapshot)

    def _report(self, error: SyncError) -> None:
        self.error = error
        if self._on_error is not None:
            self._notify(self._on_error, error)

    def _notify(self, callback: Callable, value) -> None:
        try:
            callback(value)
        except Exception:
            logger.exception("Sync observer %r raised", callback)
