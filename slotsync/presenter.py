"""View-model seam between the sync engine and a UI.

The presenter exposes the current snapshot and derived values (best slots,
participants, finalized flag) and turns UI intents into scheduler calls.
Errors from intents are kept on ``error`` for display instead of raised.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, tzinfo
from typing import Callable

from slotsync import availability
from slotsync.clock import Clock
from slotsync.errors import ErrorResponse, InvalidInputError, SyncError
from slotsync.models import Event, LocalSnapshot
from slotsync.scheduler import SyncScheduler, SyncState
from slotsync.slots import describe_slot, slot_day
from slotsync.store import EventStore

logger = logging.getLogger("slotsync.presenter")


class IdentitySession:
    """Display names picked during this session, one per event."""

    def __init__(self) -> None:
        self._names: dict[str, str] = {}

    def get(self, event_id: str) -> str | None:
        return self._names.get(event_id)

    def remember(self, event_id: str, name: str) -> None:
        self._names[event_id] = name

    def forget(self, event_id: str) -> None:
        self._names.pop(event_id, None)


class DragSelection:
    """Turns a press-and-drag gesture over the grid into toggle intents.

    The first slot pressed decides the mode: select if the user was not
    marked there, deselect otherwise. Slots entered while the button is
    held are toggled only if they do not already match that mode.
    """

    def __init__(self, toggle: Callable[[str, bool], object], is_mine: Callable[[str], bool]) -> None:
        self._toggle = toggle
        self._is_mine = is_mine
        self.active = False
        self.mode = True

    def press(self, key: str) -> None:
        self.active = True
        self.mode = not self._is_mine(key)
        self._toggle(key, self.mode)

    def enter(self, key: str) -> None:
        if self.active and self._is_mine(key) != self.mode:
            self._toggle(key, self.mode)

    def release(self) -> None:
        self.active = False


@dataclass(frozen=True)
class SlotView:
    key: str
    label: str
    count: int
    mine: bool
    best: bool
    pending: bool


class EventPresenter:
    def __init__(
        self,
        store: EventStore,
        event_id: str,
        session: IdentitySession | None = None,
        *,
        clock: Clock | None = None,
        poll_interval: float | None = None,
        debounce: float | None = None,
        tz: tzinfo = UTC,
        on_render: Callable[["EventPresenter"], None] | None = None,
    ) -> None:
        self.event_id = event_id
        self.session = session or IdentitySession()
        self.tz = tz
        self.error: SyncError | None = None
        self._on_render = on_render
        self.scheduler = SyncScheduler(
            store,
            event_id,
            identity=self.session.get(event_id),
            clock=clock,
            poll_interval=poll_interval,
            debounce=debounce,
            on_change=self._changed,
            on_error=self._failed,
        )
        self.drag = DragSelection(self.toggle_slot, self.is_mine)

    async def open(self) -> None:
        self.scheduler.start()

    async def close(self) -> None:
        await self.scheduler.close()

    # --- state exposed to the view ---

    @property
    def snapshot(self) -> LocalSnapshot | None:
        return self.scheduler.snapshot

    @property
    def event(self) -> Event | None:
        snapshot = self.scheduler.snapshot
        return snapshot.event if snapshot else None

    @property
    def identity(self) -> str | None:
        return self.scheduler.identity

    @property
    def state(self) -> SyncState:
        return self.scheduler.state

    @property
    def loading(self) -> bool:
        return self.event is None and self.error is None

    @property
    def finalized(self) -> bool:
        event = self.event
        return bool(event and event.is_finalized)

    @property
    def best_slots(self) -> list[str]:
        event = self.event
        if event is None:
            return []
        return [s.time for s in availability.compute_best_slots(event)]

    @property
    def participants(self) -> list[availability.Participant]:
        event = self.event
        return availability.participants(event) if event else []

    @property
    def is_creator(self) -> bool:
        event = self.event
        return bool(event and self.identity and event.creator == self.identity)

    @property
    def can_finalize(self) -> bool:
        return self.is_creator and not self.finalized and bool(self.best_slots)

    @property
    def error_response(self) -> ErrorResponse | None:
        return self.error.to_response() if self.error else None

    def is_mine(self, key: str) -> bool:
        event = self.event
        if event is None or not self.identity:
            return False
        slot = event.slot(key)
        return bool(slot and slot.has(self.identity))

    def slot_label(self, key: str) -> str:
        event = self.event
        if event is None:
            return key
        return describe_slot(key, event.event_type, self.tz)

    def columns(self) -> list[tuple[str, list[SlotView]]]:
        """Slots grouped by day, in event order."""
        event = self.event
        if event is None:
            return []
        best = set(self.best_slots)
        pending = self.snapshot.pending
        grouped: dict[str, list[SlotView]] = {}
        for s in event.time_slots:
            day = slot_day(s.time, event.event_type, self.tz)
            grouped.setdefault(day, []).append(
                SlotView(
                    key=s.time,
                    label=self.slot_label(s.time),
                    count=s.count,
                    mine=bool(self.identity) and s.has(self.identity),
                    best=s.time in best,
                    pending=s.time in pending,
                )
            )
        return list(grouped.items())

    # --- intents ---

    def choose_identity(self, name: str) -> bool:
        """Pick the display name for this event view.

        The name is fixed once chosen; choosing a different one afterwards
        is rejected so pending marks stay attributed to their author.
        """
        event = self.event
        if event is None:
            self.error = SyncError(detail="Event is not loaded yet", event_id=self.event_id)
            return False
        if self.identity is not None:
            if name.strip() == self.identity:
                return True
            self.error = InvalidInputError(
                detail="A name has already been chosen for this event",
                name=name,
                event_id=self.event_id,
            )
            self._render()
            return False
        try:
            name = availability.claim_identity(event, name)
        except SyncError as e:
            self.error = e
            self._render()
            return False
        self.session.remember(self.event_id, name)
        self.scheduler.identity = name
        self.error = None
        logger.info("Identity %s chosen for event %s", name, self.event_id)
        self._render()
        return True

    def toggle_slot(self, key: str, selected: bool) -> bool:
        return self._intent(self.scheduler.toggle, key, selected)

    def clear_mine(self) -> bool:
        return self._intent(self.scheduler.clear_mine)

    async def finalize_event(self) -> bool:
        try:
            await self.scheduler.finalize()
        except SyncError as e:
            logger.info("Finalize of %s rejected: %s", self.event_id, e.detail)
            self.error = e
            self._render()
            return False
        return True

    def press(self, key: str) -> None:
        if self.finalized:
            return
        self.drag.press(key)

    def enter(self, key: str) -> None:
        if self.finalized:
            return
        self.drag.enter(key)

    def release(self) -> None:
        self.drag.release()

    # --- internals ---

    def _intent(self, fn: Callable, *args) -> bool:
        try:
            fn(*args)
        except SyncError as e:
            logger.info("Intent %s on %s rejected: %s", fn.__name__, self.event_id, e.detail)
            self.error = e
            self._render()
            return False
        return True

    def _changed(self, snapshot: LocalSnapshot) -> None:
        # a transient failure is over once store state arrives; pending
        # marks mean this is an optimistic local edit
        if self.error is not None and self.error.retryable and not snapshot.pending:
            self.error = None
        self._render()

    def _failed(self, error: SyncError) -> None:
        self.error = error
        self._render()

    def _render(self) -> None:
        if self._on_render is not None:
            self._on_render(self)
