"""Slot selection: in-range filter with capacity-tier fallback."""

import logging
import re

from booker.exceptions import NoSlotInRangeError
from booker.models import SlotRecord

log = logging.getLogger(__name__)

_CLOCK_24 = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$")
_CLOCK_12 = re.compile(r"(\d{1,2}):(\d{2})\s*(AM|PM)", re.IGNORECASE)


def time_to_minutes(value: str) -> int | None:
    """Minute of day for "07:50", "07:50:00" or "7:50 AM". None if unparseable."""
    value = str(value).strip()
    m = _CLOCK_24.match(value)
    if m:
        return int(m.group(1)) * 60 + int(m.group(2))
    m = _CLOCK_12.search(value)
    if m:
        hours = int(m.group(1)) % 12
        if m.group(3).upper() == "PM":
            hours += 12
        return hours * 60 + int(m.group(2))
    return None


def _bounds(earliest: str, latest: str) -> tuple[int, int]:
    lo, hi = time_to_minutes(earliest), time_to_minutes(latest)
    if lo is None or hi is None:
        raise ValueError(f"Invalid time window {earliest!r}-{latest!r}")
    return lo, hi


def _tiers(slots: list[SlotRecord]) -> list[int]:
    # full party first, then fewer seats down to one
    return sorted({s.available for s in slots}, reverse=True)


def _no_slot(slots: list[SlotRecord], earliest: str, latest: str) -> NoSlotInRangeError:
    return NoSlotInRangeError(
        f"No available slots between {earliest} and {latest} ({len(slots)} slots on the sheet)"
    )


def select_slot(slots: list[SlotRecord], earliest: str, latest: str) -> SlotRecord:
    """Pick the earliest in-range slot from the highest non-empty capacity tier."""
    lo, hi = _bounds(earliest, latest)

    in_range: list[tuple[int, SlotRecord]] = []
    for slot in slots:
        minutes = time_to_minutes(slot.time)
        if minutes is not None and lo <= minutes <= hi:
            in_range.append((minutes, slot))
    log.info("  %d of %d slots fall between %s and %s.", len(in_range), len(slots), earliest, latest)

    for tier in _tiers(slots):
        matches = [(m, s) for m, s in in_range if s.available == tier]
        if matches:
            minutes, chosen = min(matches, key=lambda pair: pair[0])
            log.info("  Selected %s (%d spots, %d in tier).", chosen.time, chosen.available, len(matches))
            return chosen

    raise _no_slot(slots, earliest, latest)


def select_slot_fast(slots: list[SlotRecord], earliest: str, latest: str) -> SlotRecord:
    """Same choice as select_slot, stopping at the first in-range hit per tier."""
    lo, hi = _bounds(earliest, latest)
    ordered = sorted(
        ((time_to_minutes(s.time), s) for s in slots),
        key=lambda pair: -1 if pair[0] is None else pair[0],
    )
    for tier in _tiers(slots):
        for minutes, slot in ordered:
            if slot.available != tier or minutes is None:
                continue
            if minutes > hi:
                break
            if minutes >= lo:
                log.info("  FAST: %s (%d spots).", slot.time, slot.available)
                return slot
    raise _no_slot(slots, earliest, latest)
