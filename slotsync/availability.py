"""Local availability model.

Pure functions over immutable snapshots. The acting identity is always
passed in explicitly.
"""

import logging
import time
from dataclasses import dataclass

from slotsync.errors import (
    EmptyFinalizeError,
    EventFinalizedError,
    IdentityTakenError,
    InvalidInputError,
    PermissionDeniedError,
    UnknownSlotError,
)
from slotsync.models import Event, LocalSnapshot, TimeSlot

logger = logging.getLogger("slotsync.availability")

DAY_MS = 24 * 60 * 60 * 1000


@dataclass(frozen=True)
class Participant:
    name: str
    has_voted: bool


def _require_open(snapshot: LocalSnapshot) -> None:
    if snapshot.event.is_finalized:
        raise EventFinalizedError(event_id=snapshot.event.id)


def _require_identity(identity: str) -> None:
    if not identity or not identity.strip():
        raise InvalidInputError(detail="An identity is required to edit availability")


def toggle(snapshot: LocalSnapshot, identity: str, slot_key: str, selected: bool) -> LocalSnapshot:
    """Mark or unmark ``identity`` as available for ``slot_key``."""
    _require_open(snapshot)
    _require_identity(identity)
    event = snapshot.event
    if event.slot(slot_key) is None:
        raise UnknownSlotError(slot=slot_key, event_id=event.id)

    slots = [
        s.with_participant(identity, selected) if s.time == slot_key else s
        for s in event.time_slots
    ]
    return LocalSnapshot(event=event.with_slots(slots), pending=snapshot.pending | {slot_key})


def clear_mine(snapshot: LocalSnapshot, identity: str) -> LocalSnapshot:
    """Remove ``identity`` from every slot."""
    _require_open(snapshot)
    _require_identity(identity)
    touched = {s.time for s in snapshot.event.time_slots if s.has(identity)}
    slots = [s.with_participant(identity, False) for s in snapshot.event.time_slots]
    return LocalSnapshot(event=snapshot.event.with_slots(slots), pending=snapshot.pending | touched)


def compute_best_slots(event: Event) -> list[TimeSlot]:
    """Slots holding the maximum participant count; empty when nobody is available."""
    if not event.time_slots:
        return []
    best = max(s.count for s in event.time_slots)
    if best == 0:
        return []
    return [s for s in event.time_slots if s.count == best]


def finalize(snapshot: LocalSnapshot, requester: str) -> LocalSnapshot:
    """Close the event on its best-attended slots.

    Raises:
        PermissionDeniedError: requester is not the creator.
        EventFinalizedError: the event is already closed.
        EmptyFinalizeError: no participant marks anywhere.
    """
    event = snapshot.event
    if requester != event.creator:
        raise PermissionDeniedError(event_id=event.id, requester=requester)
    _require_open(snapshot)
    best = compute_best_slots(event)
    if not best:
        raise EmptyFinalizeError(event_id=event.id)
    keys = [s.time for s in best]
    logger.info("Finalizing event %s on %d slot(s) with %d participant(s)", event.id, len(keys), best[0].count)
    return LocalSnapshot(event=event.with_finalized(keys), pending=snapshot.pending)


def participants(event: Event) -> list[Participant]:
    """Creator plus everyone who has marked any slot, sorted by name."""
    voted: set[str] = set()
    for s in event.time_slots:
        voted.update(s.participants)
    names = voted | {event.creator}
    return [
        Participant(name=n, has_voted=n in voted)
        for n in sorted(names, key=lambda n: (n.casefold(), n))
    ]


def claim_identity(event: Event, name: str, allow_returning: bool = True) -> str:
    """Validate a display name for this event and return it stripped.

    Names are unique case-insensitively. With ``allow_returning``, a name
    matching a known participant exactly is accepted as that participant
    coming back.
    """
    name = name.strip()
    if not name:
        raise InvalidInputError(detail="Please enter a name")
    for p in participants(event):
        if p.name.casefold() != name.casefold():
            continue
        if allow_returning and p.name == name:
            return name
        raise IdentityTakenError(name=name, event_id=event.id)
    return name


def is_expired(event: Event, now_ms: int | None = None, expiry_days: int = 7) -> bool:
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return now_ms - event.created_at > expiry_days * DAY_MS
