"""Event data model and its store wire format.

Wire format (JSON, camelCase, as written by the browser client):

    {
      "id": "k3x9q2",
      "eventName": "Team Lunch",
      "creator": "Alex",
      "createdAt": 1717228800000,
      "eventType": "date-based",
      "timeSlots": [{"time": "2024-06-01T08:00:00.000Z", "participants": {"Alex": true}}],
      "finalizedTime": null
    }

Unknown fields, on the event and on each slot, are kept so a
read-modify-write never drops data written by other clients.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Iterable

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_serializer, field_validator, model_validator

from slotsync.errors import InvalidEventError


class EventType(str, Enum):
    DATE_BASED = "date-based"
    WEEKLY = "weekly"


class TimeSlot(BaseModel):
    """One schedulable unit and the identities available for it."""

    model_config = ConfigDict(frozen=True, extra="allow")

    time: str
    participants: frozenset[str] = frozenset()

    @field_validator("participants", mode="before")
    @classmethod
    def parse_participants(cls, v: Any) -> Any:
        # Wire format is {name: true}; a falsy flag means "not available".
        if v is None:
            return frozenset()
        if isinstance(v, dict):
            return frozenset(name for name, marked in v.items() if marked)
        return v

    @field_serializer("participants")
    def dump_participants(self, v: frozenset[str]) -> dict[str, bool]:
        return {name: True for name in sorted(v)}

    @property
    def count(self) -> int:
        return len(self.participants)

    def has(self, identity: str) -> bool:
        return identity in self.participants

    def with_participant(self, identity: str, selected: bool) -> "TimeSlot":
        if selected == self.has(identity):
            return self
        if selected:
            members = self.participants | {identity}
        else:
            members = self.participants - {identity}
        return self.model_copy(update={"participants": frozenset(members)})


class NewEvent(BaseModel):
    """Event payload without an id, as sent to ``POST /events``."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="allow")

    name: str = Field(alias="eventName")
    creator: str
    created_at: int = Field(alias="createdAt", description="Epoch milliseconds")
    event_type: EventType = Field(alias="eventType")
    time_slots: tuple[TimeSlot, ...] = Field(alias="timeSlots")
    finalized_time: tuple[str, ...] | None = Field(default=None, alias="finalizedTime")

    @field_validator("finalized_time", mode="before")
    @classmethod
    def empty_means_open(cls, v: Any) -> Any:
        if isinstance(v, (list, tuple)) and not v:
            return None
        return v

    @model_validator(mode="after")
    def unique_slot_keys(self) -> "NewEvent":
        seen: set[str] = set()
        for slot in self.time_slots:
            if slot.time in seen:
                raise ValueError(f"duplicate slot key: {slot.time}")
            seen.add(slot.time)
        return self

    @property
    def is_finalized(self) -> bool:
        return self.finalized_time is not None

    @property
    def created_at_datetime(self) -> datetime:
        return datetime.fromtimestamp(self.created_at / 1000, tz=UTC)

    def slot(self, key: str) -> TimeSlot | None:
        for s in self.time_slots:
            if s.time == key:
                return s
        return None

    def slot_keys(self) -> list[str]:
        return [s.time for s in self.time_slots]

    def slot_map(self) -> dict[str, TimeSlot]:
        return {s.time: s for s in self.time_slots}

    def with_slots(self, slots: Iterable[TimeSlot]):
        return self.model_copy(update={"time_slots": tuple(slots)})

    def with_finalized(self, keys: Iterable[str]):
        return self.model_copy(update={"finalized_time": tuple(keys)})

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)

    def encode(self) -> str:
        return self.model_dump_json(by_alias=True)


class Event(NewEvent):
    """A stored event; ``id`` is assigned by the store."""

    id: str

    @classmethod
    def from_wire(cls, data: Any) -> "Event":
        """Validate a decoded JSON payload, raising InvalidEventError on failure."""
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise InvalidEventError(detail=f"Invalid event data structure: {e.error_count()} error(s)") from e

    @classmethod
    def decode(cls, raw: str | bytes) -> "Event":
        try:
            return cls.model_validate_json(raw)
        except ValidationError as e:
            raise InvalidEventError(detail=f"Invalid event data structure: {e.error_count()} error(s)") from e


@dataclass(frozen=True)
class LocalSnapshot:
    """A client's current belief about an event.

    ``pending`` holds the slot keys whose local marks have not been
    confirmed by a store write yet.
    """

    event: Event
    pending: frozenset[str] = field(default_factory=frozenset)

    @property
    def finalized(self) -> bool:
        return self.event.is_finalized

    @property
    def dirty(self) -> bool:
        return bool(self.pending)
