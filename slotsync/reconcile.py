"""Read-modify-merge-write reconciliation against the event store.

A flush re-reads the event, keeps every other participant's marks exactly
as the store has them, and re-applies only the caller's own marks from the
local snapshot before writing the whole event back.

There is no version token at the store: a third party writing between our
read and our write can still be overwritten. That window is kept as short
as one round trip.
"""

import logging

from slotsync import availability
from slotsync.models import Event, LocalSnapshot

logger = logging.getLogger("slotsync.reconcile")


def merge_marks(latest: Event, local: Event, identity: str) -> Event:
    """Layer ``identity``'s marks from ``local`` onto ``latest``.

    Slots that only exist locally are ignored; a slot missing locally
    leaves the identity unmarked there.
    """
    local_slots = local.slot_map()
    merged = []
    for slot in latest.time_slots:
        mine = local_slots.get(slot.time)
        is_mine_locally = mine is not None and mine.has(identity)
        merged.append(slot.with_participant(identity, is_mine_locally))
    return latest.with_slots(merged)


class Reconciler:
    def __init__(self, store) -> None:
        self.store = store

    async def flush(self, local: LocalSnapshot, identity: str) -> Event:
        """Write ``identity``'s local marks on top of the freshest store state.

        Returns the merged event as written. A finalized store event is
        returned untouched without a write.
        """
        event_id = local.event.id
        latest = await self.store.get_event(event_id)
        if latest.is_finalized:
            logger.info("Event %s was finalized remotely; dropping %d pending mark(s)", event_id, len(local.pending))
            return latest
        merged = merge_marks(latest, local.event, identity)
        if merged == latest:
            logger.debug("Flush for %s on %s is a no-op; skipping write", identity, event_id)
            return latest
        await self.store.put_event(merged)
        logger.info("Flushed marks for %s on event %s (pending=%d)", identity, event_id, len(local.pending))
        return merged

    async def finalize(self, local: LocalSnapshot, requester: str) -> Event:
        """Merge the requester's marks onto the latest state and close the event."""
        latest = await self.store.get_event(local.event.id)
        merged = merge_marks(latest, local.event, requester)
        closed = availability.finalize(LocalSnapshot(event=merged), requester).event
        await self.store.put_event(closed)
        logger.info("Event %s finalized at %s", closed.id, ", ".join(closed.finalized_time or ()))
        return closed
