"""Slot grid generation and slot key formatting.

Every event gets one slot per hour from 08:00 to 22:00 inclusive: for each
selected date (date-based) or for each weekday (weekly).
"""

import logging
import time
from datetime import UTC, date, datetime, tzinfo
from typing import Iterable

from slotsync.errors import InvalidInputError
from slotsync.models import EventType, NewEvent, TimeSlot

logger = logging.getLogger("slotsync.slots")

FIRST_HOUR = 8
LAST_HOUR = 22
HOURS = range(FIRST_HOUR, LAST_HOUR + 1)

# Weekday index used in weekly keys: 0=Sunday .. 6=Saturday
DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]

_ISO_FORMAT = "%Y-%m-%dT%H:%M:%S.000Z"


def date_slot_key(day: date, hour: int, tz: tzinfo = UTC) -> str:
    """UTC instant key for ``hour`` o'clock on ``day`` in ``tz``."""
    local = datetime(day.year, day.month, day.day, hour, tzinfo=tz)
    return local.astimezone(UTC).strftime(_ISO_FORMAT)


def weekly_slot_key(weekday: int, hour: int) -> str:
    return f"{weekday}-{hour}"


def parse_weekly_key(key: str) -> tuple[int, int]:
    day_str, _, hour_str = key.partition("-")
    weekday, hour = int(day_str), int(hour_str)
    if not 0 <= weekday <= 6 or not 0 <= hour <= 23:
        raise ValueError(f"invalid weekly slot key: {key}")
    return weekday, hour


def parse_date_key(key: str) -> datetime:
    return datetime.fromisoformat(key.replace("Z", "+00:00"))


def generate_date_slots(dates: Iterable[date], tz: tzinfo = UTC) -> list[TimeSlot]:
    return [
        TimeSlot(time=date_slot_key(day, hour, tz))
        for day in sorted(set(dates))
        for hour in HOURS
    ]


def generate_weekly_slots() -> list[TimeSlot]:
    # Monday first; Sunday (0) closes the week
    return [
        TimeSlot(time=weekly_slot_key(d % 7, hour))
        for d in range(1, 8)
        for hour in HOURS
    ]


def parse_dates(values: Iterable[str]) -> list[date]:
    out = []
    for v in values:
        try:
            out.append(date.fromisoformat(v.strip()))
        except ValueError:
            raise InvalidInputError(detail=f"invalid date format: {v}") from None
    return out


def build_new_event(
    name: str,
    creator: str,
    event_type: EventType,
    dates: Iterable[date] = (),
    *,
    tz: tzinfo = UTC,
    max_dates: int = 10,
    today: date | None = None,
    now_ms: int | None = None,
) -> NewEvent:
    """Build the payload for a new event with its full slot grid.

    Weekly events ignore ``dates``. When ``today`` is given, dates before it
    are rejected.
    """
    name = name.strip()
    creator = creator.strip()
    if not name or not creator:
        raise InvalidInputError(detail="Please fill in both the event name and your name.")

    if event_type == EventType.DATE_BASED:
        unique = sorted(set(dates))
        if not unique:
            raise InvalidInputError(detail="Please select at least one date for the event.")
        if len(unique) > max_dates:
            raise InvalidInputError(detail=f"You can select a maximum of {max_dates} dates.")
        if today is not None and unique[0] < today:
            raise InvalidInputError(detail=f"date is in the past: {unique[0].isoformat()}")
        slots = generate_date_slots(unique, tz)
    else:
        slots = generate_weekly_slots()

    logger.debug("Built %s event name=%s slots=%d", event_type.value, name, len(slots))
    return NewEvent(
        name=name,
        creator=creator,
        created_at=now_ms if now_ms is not None else int(time.time() * 1000),
        event_type=event_type,
        time_slots=tuple(slots),
        finalized_time=None,
    )


def describe_slot(key: str, event_type: EventType, tz: tzinfo = UTC) -> str:
    """Human label for a slot key."""
    if event_type == EventType.WEEKLY:
        weekday, hour = parse_weekly_key(key)
        return f"Every {DAY_NAMES[weekday]} at {hour:02d}:00"
    local = parse_date_key(key).astimezone(tz)
    return local.strftime("%a, %b %d %Y %H:%M")


def slot_day(key: str, event_type: EventType, tz: tzinfo = UTC) -> str:
    """Column key a slot is grouped under in the grid (date or weekday name)."""
    if event_type == EventType.WEEKLY:
        return DAY_NAMES[parse_weekly_key(key)[0]]
    return parse_date_key(key).astimezone(tz).date().isoformat()
