"""Tee sheet parsing: LaunchReserver descriptors and the not-open notice."""

import html as htmllib
import logging
import re

from bs4 import BeautifulSoup

from booker.models import SlotRecord

log = logging.getLogger(__name__)

# LaunchReserver('95', '9/6/2025', '7:50 AM', '1', '0', '4')
#   course, date, time, tee, players present, spots remaining
DESCRIPTOR_RE = re.compile(
    r"LaunchReserver\(\s*"
    + r",\s*".join([r"['\"]([^'\"]+)['\"]"] * 6)
)
CALL_RE = re.compile(r"LaunchReserver\([^)]+\)")
ARG_RE = re.compile(r"['\"]([^'\"]*)['\"]")


def _to_int(value: str) -> int:
    try:
        return int(value.strip())
    except ValueError:
        return 0


def _collect(descriptors, slots: list[SlotRecord], seen: set[tuple[str, str]]) -> None:
    for course_id, date, time, tee, players, available in descriptors:
        spots = _to_int(available)
        if spots <= 0 or (time, date) in seen:
            continue
        seen.add((time, date))
        slots.append(SlotRecord(
            course_id=course_id,
            date=date,
            time=time,
            tee=tee,
            players=_to_int(players),
            available=spots,
        ))


def scan_text(raw: str) -> list[SlotRecord]:
    """Pattern scan over the entity-decoded page text."""
    slots: list[SlotRecord] = []
    _collect(DESCRIPTOR_RE.findall(htmllib.unescape(raw)), slots, set())
    return slots


def scan_onclick(raw: str) -> list[SlotRecord]:
    """Structural scan of onclick attributes."""
    soup = BeautifulSoup(raw, "html.parser")
    descriptors = []
    for elem in soup.find_all(attrs={"onclick": True}):
        call = CALL_RE.search(elem["onclick"])
        if not call:
            continue
        args = ARG_RE.findall(call.group(0))
        if len(args) >= 6:
            descriptors.append(tuple(args[:6]))
    slots: list[SlotRecord] = []
    _collect(descriptors, slots, set())
    return slots


def parse_slots(raw: str) -> list[SlotRecord]:
    """Extract every bookable slot, de-duplicated by (time, date), in page order."""
    slots = scan_text(raw)
    if not slots:
        slots = scan_onclick(raw)
        if slots:
            log.info("  Pattern scan found nothing, onclick scan found %d slots.", len(slots))
    return slots


def find_closed_notice(raw: str) -> tuple[str, str] | None:
    """Return (message, countdown) when the tee sheet is not open yet."""
    soup = BeautifulSoup(raw, "html.parser")
    notice = soup.select_one(".ncDateNotOpen")
    if notice is None:
        return None
    message = notice.get_text(" ", strip=True)
    if not message:
        return None
    countdown = soup.select_one("#cdownBox")
    return message, countdown.get_text(" ", strip=True) if countdown else ""
