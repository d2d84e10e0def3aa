"""
Command line client for a time-slot event store.

Usage:
    slotsync create --name "Team Lunch" --creator Alex --date 2024-06-01 --date 2024-06-02
    slotsync create --name "Weekly sync" --creator Alex --weekly
    slotsync show EVENT_ID
    slotsync mark EVENT_ID --as Sam --slot 2024-06-01T08:00:00.000Z --slot 2024-06-01T09:00:00.000Z
    slotsync mark EVENT_ID --as Sam --clear
    slotsync finalize EVENT_ID --as Alex
    slotsync watch EVENT_ID --seconds 30

The store location comes from SLOTSYNC_STORE_BASE_URL unless --store is given.
"""

import argparse
import asyncio
import logging
import sys
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from slotsync import availability
from slotsync.config import get_settings
from slotsync.errors import NotFoundError, SyncError
from slotsync.models import EventType, LocalSnapshot
from slotsync.presenter import EventPresenter
from slotsync.reconcile import Reconciler
from slotsync.slots import build_new_event, describe_slot, parse_dates
from slotsync.store import HttpEventStore

logger = logging.getLogger("slotsync.cli")


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s",
    )


def time_zone(value: str) -> ZoneInfo:
    try:
        return ZoneInfo(value)
    except (ZoneInfoNotFoundError, ValueError):
        raise argparse.ArgumentTypeError(f"unknown time zone: {value}") from None


def _print_event(event, tz) -> None:
    print(f"{event.name}  (id={event.id}, by {event.creator}, {event.event_type.value})")
    if event.is_finalized:
        print("Finalized:")
        for key in event.finalized_time:
            print(f"  {describe_slot(key, event.event_type, tz)}")
        return
    people = availability.participants(event)
    print(f"Participants ({len(people)}): " + ", ".join(
        f"{p.name}{'' if p.has_voted else ' (no marks)'}" for p in people
    ))
    best = availability.compute_best_slots(event)
    if best:
        print(f"Top times ({best[0].count} of {len(people)} available):")
        for slot in best[:5]:
            print(f"  {describe_slot(slot.time, event.event_type, tz)}  [{slot.time}]")
    else:
        print("Nobody has marked any time yet.")


async def cmd_create(store: HttpEventStore, args: argparse.Namespace, tz) -> int:
    settings = get_settings().sync
    event_type = EventType.WEEKLY if args.weekly else EventType.DATE_BASED
    new_event = build_new_event(
        args.name,
        args.creator,
        event_type,
        parse_dates(args.date or []),
        tz=tz,
        max_dates=settings.max_dates,
    )
    event_id = await store.create_event(new_event)
    print(event_id)
    return 0


async def cmd_show(store: HttpEventStore, args: argparse.Namespace, tz) -> int:
    event = await store.get_event(args.event_id)
    _print_event(event, tz)
    return 0


async def cmd_mark(store: HttpEventStore, args: argparse.Namespace, tz) -> int:
    event = await store.get_event(args.event_id)
    snapshot = LocalSnapshot(event=event)
    if args.clear:
        snapshot = availability.clear_mine(snapshot, args.identity)
    for key in args.slots:
        snapshot = availability.toggle(snapshot, args.identity, key, not args.unmark)
    merged = await Reconciler(store).flush(snapshot, args.identity)
    mine = [s.time for s in merged.time_slots if s.has(args.identity)]
    print(f"{args.identity} is available for {len(mine)} slot(s)")
    return 0


async def cmd_finalize(store: HttpEventStore, args: argparse.Namespace, tz) -> int:
    event = await store.get_event(args.event_id)
    snapshot = LocalSnapshot(event=event)
    # reject locally before any write
    availability.finalize(snapshot, args.identity)
    closed = await Reconciler(store).finalize(snapshot, args.identity)
    _print_event(closed, tz)
    return 0


async def cmd_watch(store: HttpEventStore, args: argparse.Namespace, tz) -> int:
    def render(presenter: EventPresenter) -> None:
        if presenter.error is not None:
            print(f"! {presenter.error.detail}", file=sys.stderr)
        elif presenter.event is not None:
            print(f"-- {presenter.state.value}")
            _print_event(presenter.event, tz)

    presenter = EventPresenter(store, args.event_id, tz=tz, on_render=render)
    await presenter.open()
    try:
        await asyncio.sleep(args.seconds)
    finally:
        await presenter.close()
    return 1 if isinstance(presenter.error, NotFoundError) else 0


COMMANDS = {
    "create": cmd_create,
    "show": cmd_show,
    "mark": cmd_mark,
    "finalize": cmd_finalize,
    "watch": cmd_watch,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="slotsync",
        description="Coordinate shared time-slot availability through an event store.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--store", help="Store base URL (default: SLOTSYNC_STORE_BASE_URL)")
    parser.add_argument("--tz", type=time_zone, default="UTC", help="Time zone for dates and labels (default: UTC)")
    sub = parser.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create", help="Create a new event")
    create.add_argument("--name", required=True)
    create.add_argument("--creator", required=True)
    create.add_argument("--weekly", action="store_true", help="Recurring weekly grid instead of dates")
    create.add_argument("--date", action="append", help="YYYY-MM-DD, repeatable")

    show = sub.add_parser("show", help="Print an event summary")
    show.add_argument("event_id")

    mark = sub.add_parser("mark", help="Mark (or unmark) slots for a participant")
    mark.add_argument("event_id")
    mark.add_argument("--as", dest="identity", required=True)
    mark.add_argument("--unmark", action="store_true")
    mark.add_argument("--clear", action="store_true", help="Clear all marks first")
    mark.add_argument("--slot", dest="slots", action="append", default=[], help="Slot key, repeatable")

    finalize = sub.add_parser("finalize", help="Close the event on its best slots (creator only)")
    finalize.add_argument("event_id")
    finalize.add_argument("--as", dest="identity", required=True)

    watch = sub.add_parser("watch", help="Poll an event and print every change")
    watch.add_argument("event_id")
    watch.add_argument("--seconds", type=float, default=30.0)

    return parser


async def run(args: argparse.Namespace) -> int:
    tz = args.tz
    async with HttpEventStore(base_url=args.store) as store:
        try:
            return await COMMANDS[args.command](store, args, tz)
        except SyncError as e:
            logger.debug("Command %s failed", args.command, exc_info=True)
            print(f"error: {e.detail}", file=sys.stderr)
            return 1


def main(argv: list[str] | None = None) -> int:
    """CLI entry point."""
    args = build_parser().parse_args(argv)
    configure_logging(get_settings().debug.log_level)
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
