import os
import sys
REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))
if REPO_ROOT not in sys.path:
    sys.path.insert(0, REPO_ROOT)

import time

import httpx
import pytest
from fastapi import FastAPI, HTTPException

from slotsync.config import clear_settings_cache
from slotsync.models import Event, EventType, TimeSlot
from slotsync.slots import build_new_event, parse_dates
from slotsync.store import HttpEventStore, MemoryEventStore


def _now_ms() -> int:
    return int(time.time() * 1000)


def build_store_app(records: dict) -> FastAPI:
    """Minimal store speaking the GET/PUT/POST event contract."""
    app = FastAPI()

    @app.get("/events/{event_id}")
    async def get_event(event_id: str) -> dict:
        if event_id not in records:
            raise HTTPException(status_code=404, detail="Event not found")
        return records[event_id]

    @app.put("/events/{event_id}")
    async def put_event(event_id: str, body: dict) -> dict:
        if event_id not in records:
            raise HTTPException(status_code=404, detail="Event not found")
        records[event_id] = body
        return {"ok": True}

    @app.post("/events", status_code=201)
    async def create_event(body: dict) -> dict:
        event_id = f"evt{len(records) + 1}"
        records[event_id] = {**body, "id": event_id}
        return {"id": event_id}

    return app


@pytest.fixture(autouse=True)
def fresh_settings():
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def make_event():
    """Build an Event with one slot per entry of ``counts``.

    Slot ``i`` holds voters ``v0..v{counts[i]-1}``.
    """

    def _make(
        counts=(0, 0, 0, 0),
        *,
        event_id="evt1",
        creator="Alex",
        finalized=None,
        created_at=None,
    ) -> Event:
        slots = tuple(
            TimeSlot(time=f"1-{8 + i}", participants=frozenset(f"v{j}" for j in range(c)))
            for i, c in enumerate(counts)
        )
        return Event(
            id=event_id,
            name="Team Lunch",
            creator=creator,
            created_at=created_at if created_at is not None else _now_ms(),
            event_type=EventType.WEEKLY,
            time_slots=slots,
            finalized_time=finalized,
        )

    return _make


@pytest.fixture
def make_new_event():
    def _make(creator="Alex", dates=("2024-06-01", "2024-06-02"), weekly=False, name="Team Lunch"):
        event_type = EventType.WEEKLY if weekly else EventType.DATE_BASED
        return build_new_event(name, creator, event_type, parse_dates(dates), now_ms=_now_ms())

    return _make


@pytest.fixture
def memory_store():
    return MemoryEventStore()


@pytest.fixture
def store_records():
    return {}


@pytest.fixture
def http_store(store_records):
    app = build_store_app(store_records)
    client = httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://store.test")
    return HttpEventStore(client=client)
