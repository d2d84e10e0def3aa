"""Tests for the event presenter and identity session."""

import pytest

from slotsync.clock import ManualClock
from slotsync.errors import (
    IdentityTakenError,
    InvalidInputError,
    NetworkError,
    PermissionDeniedError,
    UnknownSlotError,
)
from slotsync.presenter import DragSelection, EventPresenter, IdentitySession
from slotsync.scheduler import SyncState
from slotsync.store import MemoryEventStore


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def open_presenter(clock):
    async def _open(store, event_id="evt1", session=None, **kwargs):
        presenter = EventPresenter(store, event_id, session, clock=clock, poll_interval=3.0, debounce=1.0, **kwargs)
        await presenter.open()
        await presenter.scheduler.settle()
        return presenter

    return _open


def seed(store, event):
    store._records[event.id] = event.to_wire()


class TestIdentitySession:
    def test_names_are_per_event(self):
        session = IdentitySession()
        session.remember("evt1", "Sam")
        session.remember("evt2", "Kim")
        assert session.get("evt1") == "Sam"
        assert session.get("evt2") == "Kim"
        session.forget("evt1")
        assert session.get("evt1") is None
        session.forget("missing")


class TestDragSelection:
    def test_press_decides_mode(self):
        mine = {"a"}
        calls = []

        def toggle(key, selected):
            calls.append((key, selected))
            (mine.add if selected else mine.discard)(key)

        drag = DragSelection(toggle, lambda key: key in mine)
        drag.press("b")
        drag.enter("a")
        drag.enter("c")
        drag.release()
        drag.enter("d")
        assert calls == [("b", True), ("c", True)]

        calls.clear()
        drag.press("a")
        drag.enter("b")
        drag.enter("x")
        assert calls == [("a", False), ("b", False)]


class TestEventPresenter:
    @pytest.mark.asyncio
    async def test_loading_then_loaded(self, clock, make_event):
        store = MemoryEventStore()
        seed(store, make_event([2, 1, 0]))
        renders = []
        presenter = EventPresenter(store, "evt1", clock=clock, on_render=renders.append)
        assert presenter.loading
        assert presenter.best_slots == []
        assert presenter.columns() == []

        await presenter.open()
        await presenter.scheduler.settle()
        assert not presenter.loading
        assert presenter.best_slots == ["1-8"]
        assert [p.name for p in presenter.participants] == ["Alex", "v0", "v1"]
        assert renders
        await presenter.close()

    @pytest.mark.asyncio
    async def test_choose_identity(self, open_presenter, make_event):
        store = MemoryEventStore()
        seed(store, make_event([1, 0]))
        session = IdentitySession()
        presenter = await open_presenter(store, session=session)

        assert not presenter.choose_identity("ALEX")
        assert isinstance(presenter.error, IdentityTakenError)
        assert presenter.identity is None

        assert presenter.choose_identity("  Sam ")
        assert presenter.identity == "Sam"
        assert presenter.error is None
        assert session.get("evt1") == "Sam"
        await presenter.close()

    @pytest.mark.asyncio
    async def test_identity_cannot_be_switched(self, clock, open_presenter, make_event):
        store = MemoryEventStore()
        seed(store, make_event([0, 0]))
        presenter = await open_presenter(store)
        assert presenter.choose_identity("Sam")
        presenter.toggle_slot("1-8", True)

        assert not presenter.choose_identity("Kim")
        assert isinstance(presenter.error, InvalidInputError)
        assert presenter.identity == "Sam"
        assert presenter.choose_identity("Sam")

        clock.advance(1)
        await presenter.scheduler.settle()
        stored = await store.get_event("evt1")
        assert stored.slot("1-8").participants == {"Sam"}
        assert store.writes == 1
        await presenter.close()

    @pytest.mark.asyncio
    async def test_returning_identity_from_session(self, open_presenter, make_event):
        store = MemoryEventStore()
        seed(store, make_event([1, 0]))
        session = IdentitySession()
        session.remember("evt1", "v0")
        presenter = await open_presenter(store, session=session)

        assert presenter.identity == "v0"
        assert presenter.is_mine("1-8")
        assert not presenter.is_mine("1-9")
        await presenter.close()

    @pytest.mark.asyncio
    async def test_choose_identity_before_load(self, clock):
        presenter = EventPresenter(MemoryEventStore(), "evt1", clock=clock)
        assert not presenter.choose_identity("Sam")
        assert presenter.error is not None

    @pytest.mark.asyncio
    async def test_drag_marks_and_writes(self, clock, open_presenter, make_event):
        store = MemoryEventStore()
        seed(store, make_event([0, 0, 0]))
        presenter = await open_presenter(store)
        presenter.choose_identity("Sam")

        presenter.press("1-8")
        presenter.enter("1-9")
        presenter.release()
        assert presenter.state is SyncState.WRITE_DEBOUNCING

        clock.advance(1)
        await presenter.scheduler.settle()
        stored = await store.get_event("evt1")
        assert [s.time for s in stored.time_slots if s.has("Sam")] == ["1-8", "1-9"]
        await presenter.close()

    @pytest.mark.asyncio
    async def test_rejected_intent_is_kept_on_error(self, open_presenter, make_event):
        store = MemoryEventStore()
        seed(store, make_event([0]))
        presenter = await open_presenter(store)
        presenter.choose_identity("Sam")

        assert not presenter.toggle_slot("3-30", True)
        assert isinstance(presenter.error, UnknownSlotError)
        assert presenter.error_response.error == "unknown_slot"
        assert presenter.error_response.context == {"slot": "3-30", "event_id": "evt1"}
        await presenter.close()

    @pytest.mark.asyncio
    async def test_creator_finalizes(self, open_presenter, make_event):
        store = MemoryEventStore()
        seed(store, make_event([2, 1, 0]))
        presenter = await open_presenter(store)
        presenter.choose_identity("Alex")

        assert presenter.is_creator
        assert presenter.can_finalize
        assert await presenter.finalize_event()
        assert presenter.finalized
        assert not presenter.can_finalize
        assert presenter.state is SyncState.FINALIZED

        presenter.press("1-10")
        assert not presenter.is_mine("1-10")

    @pytest.mark.asyncio
    async def test_non_creator_cannot_finalize(self, open_presenter, make_event):
        store = MemoryEventStore()
        seed(store, make_event([1]))
        presenter = await open_presenter(store)
        presenter.choose_identity("Sam")

        assert not presenter.can_finalize
        assert not await presenter.finalize_event()
        assert isinstance(presenter.error, PermissionDeniedError)
        assert store.writes == 0
        await presenter.close()

    @pytest.mark.asyncio
    async def test_transient_error_cleared_by_fresh_state(self, clock, open_presenter, make_event):
        class BrokenReads(MemoryEventStore):
            broken = False

            async def get_event(self, event_id):
                if self.broken:
                    raise NetworkError(detail="timeout")
                return await super().get_event(event_id)

        store = BrokenReads()
        seed(store, make_event([0]))
        presenter = await open_presenter(store)

        store.broken = True
        clock.advance(3)
        await presenter.scheduler.settle()
        assert isinstance(presenter.error, NetworkError)

        store.broken = False
        clock.advance(3)
        await presenter.scheduler.settle()
        assert presenter.error is None
        await presenter.close()

    @pytest.mark.asyncio
    async def test_local_edit_keeps_transient_error(self, clock, open_presenter, make_event):
        class BrokenReads(MemoryEventStore):
            broken = False

            async def get_event(self, event_id):
                if self.broken:
                    raise NetworkError(detail="timeout")
                return await super().get_event(event_id)

        store = BrokenReads()
        seed(store, make_event([0, 0]))
        presenter = await open_presenter(store)
        presenter.choose_identity("Sam")

        store.broken = True
        clock.advance(3)
        await presenter.scheduler.settle()
        assert presenter.toggle_slot("1-8", True)
        assert isinstance(presenter.error, NetworkError)

        store.broken = False
        clock.advance(1)
        await presenter.scheduler.settle()
        assert presenter.error is None
        assert (await store.get_event("evt1")).slot("1-8").has("Sam")
        await presenter.close()

    @pytest.mark.asyncio
    async def test_columns_group_by_day(self, open_presenter, make_new_event):
        store = MemoryEventStore()
        event_id = await store.create_event(make_new_event())
        presenter = await open_presenter(store, event_id=event_id)
        presenter.choose_identity("Sam")
        presenter.toggle_slot("2024-06-02T09:00:00.000Z", True)

        columns = presenter.columns()
        assert [day for day, _ in columns] == ["2024-06-01", "2024-06-02"]
        assert all(len(views) == 15 for _, views in columns)
        marked = columns[1][1][1]
        assert marked.key == "2024-06-02T09:00:00.000Z"
        assert marked.mine and marked.pending and marked.best
        assert marked.count == 1
        assert marked.label == "Sun, Jun 02 2024 09:00"
        await presenter.close()
