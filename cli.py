#!/usr/bin/env python3
"""Tee time booking bot: one-off runs from the command line."""

import argparse
import logging
import sys
from datetime import date, datetime, timedelta

import pymysql

from config import DEFAULT_EARLIEST, DEFAULT_LATEST, WINDOW_DAYS_AHEAD
from booker import db
from booker.booking import Booker
from booker.exceptions import BookingError
from booker.models import CatalogClosed


def _parse_date(value: str) -> date:
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid date {value!r}, expected YYYY-MM-DD")


def _add_date_args(parser: argparse.ArgumentParser) -> None:
    date_group = parser.add_mutually_exclusive_group()
    date_group.add_argument("--date", type=_parse_date, help="Tee time date (YYYY-MM-DD)")
    date_group.add_argument(
        "--date-offset",
        type=int,
        help=f"Book for N days from today (default: {WINDOW_DAYS_AHEAD}, the newest bookable day)",
    )


def _resolve_date(args) -> date:
    if args.date:
        return args.date
    offset = WINDOW_DAYS_AHEAD if args.date_offset is None else args.date_offset
    return date.today() + timedelta(days=offset)


def cmd_slots(booker: Booker, args) -> int:
    target = _resolve_date(args)
    catalog = booker.fetch(target)
    if isinstance(catalog, CatalogClosed):
        print(f"Not open yet: {catalog.message} {catalog.countdown}".rstrip())
        return 1
    print(f"{len(catalog.slots)} bookable slots on {target:%A %d %B %Y}:")
    for slot in catalog.slots:
        print(f"  {slot.time:>9}  {slot.tee_label:<9} {slot.available}/{slot.total_capacity} spots")
    return 0


def cmd_book(booker: Booker, args) -> int:
    target = _resolve_date(args)
    print(f"Date: {target:%A %d %B %Y}, window: {args.earliest}-{args.latest}")
    result = booker.book(target, args.earliest, args.latest, fast=args.fast)
    print(f"\nBooking successful: {result['message']}")
    return 0


def main():
    logging.basicConfig(level=logging.INFO, format="%(message)s")

    parser = argparse.ArgumentParser(description="Tee time booking bot")
    sub = parser.add_subparsers(dest="command", required=True)

    slots = sub.add_parser("slots", help="List the bookable slots for a date")
    _add_date_args(slots)

    book = sub.add_parser("book", help="Book the best slot in a time window right now")
    _add_date_args(book)
    book.add_argument("--earliest", default=DEFAULT_EARLIEST, help=f"Earliest tee time (default: {DEFAULT_EARLIEST})")
    book.add_argument("--latest", default=DEFAULT_LATEST, help=f"Latest tee time (default: {DEFAULT_LATEST})")
    book.add_argument("--fast", action="store_true", help="Take the first in-range slot of the best tier")

    args = parser.parse_args()
    commands = {"slots": cmd_slots, "book": cmd_book}

    try:
        # credentials and the guest roster live in MySQL
        db.init_db()
        sys.exit(commands[args.command](Booker(), args))
    except pymysql.MySQLError as e:
        print(f"\nERROR (database): {e}")
        sys.exit(1)
    except BookingError as e:
        print(f"\nERROR ({e.outcome}): {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
