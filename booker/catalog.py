"""Tee sheet retrieval with date validation and retry."""

import logging
import random
import time
from datetime import date

import requests

from config import MAX_RETRIES, PADDED_DATE_AFTER, REQUEST_TIMEOUT, RETRY_DELAY, SITE_URL
from booker.auth import has_login_markers
from booker.exceptions import DateMismatchError, NetworkError
from booker.models import Catalog, CatalogClosed, CatalogOpen, SessionExpired
from booker.parser import find_closed_notice, parse_slots

log = logging.getLogger(__name__)

TEE_SHEET_PARAMS = {"p": "dynamicmodule", "pageid": "100076", "ssid": "100088", "vnf": "1"}
TEE_SHEET_URL = f"{SITE_URL}/Default.aspx"
NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


def plain_date(d: date) -> str:
    return f"{d.month}/{d.day}/{d.year}"


def padded_date(d: date) -> str:
    return f"{d.month:02d}/{d.day:02d}/{d.year}"


# (last attempt the format applies to, formatter); None means "all remaining"
DATE_FORMATS = [
    (PADDED_DATE_AFTER, plain_date),
    (None, padded_date),
]


def date_param_for_attempt(d: date, attempt: int) -> str:
    for last_attempt, fmt in DATE_FORMATS:
        if last_attempt is None or attempt <= last_attempt:
            break
    return fmt(d)


def long_date(d: date) -> str:
    """The heading the tee sheet prints, e.g. "Saturday, September 6, 2025"."""
    return f"{d:%A}, {d:%B} {d.day}, {d.year}"


def classify_network_error(exc: Exception) -> str:
    if isinstance(exc, requests.Timeout):
        return "timeout"
    if isinstance(exc, requests.ConnectionError):
        text = str(exc).lower()
        if "refused" in text:
            return "connection-refused"
    return "other"


def _cache_buster() -> int:
    return int(time.time() * 1000) + random.randint(0, 999)


def _get_sheet(session: requests.Session, date_param: str | None) -> str:
    params = dict(TEE_SHEET_PARAMS)
    if date_param:
        params["Date"] = date_param
    params["_"] = _cache_buster()
    resp = session.get(TEE_SHEET_URL, params=params, headers=NO_CACHE_HEADERS, timeout=REQUEST_TIMEOUT)
    resp.raise_for_status()
    return resp.text


def fetch_catalog(session: requests.Session, target: date, max_retries: int = MAX_RETRIES,
                  retry_delay: float = RETRY_DELAY, sleep=time.sleep) -> Catalog:
    """Fetch and validate the tee sheet for ``target``.

    Returns CatalogOpen with the parsed slots, CatalogClosed when the window
    has not opened, or SessionExpired when the portal served its login page.
    Date mismatches move straight on to the next attempt (and date format);
    transport failures wait ``retry_delay`` first.
    """
    expected = long_date(target)
    log.info("[2/5] Fetching tee sheet for %s...", expected)
    last_error: Exception | None = None
    mismatched = False

    for attempt in range(1, max_retries + 1):
        date_param = date_param_for_attempt(target, attempt)
        try:
            # The portal keeps the selected date server-side; the undated
            # request initialises that state before the dated one.
            _get_sheet(session, None)
            html = _get_sheet(session, date_param)
        except requests.RequestException as e:
            last_error = e
            mismatched = False
            log.warning("  Attempt %d/%d (%s) failed: %s [%s]", attempt, max_retries, date_param, e,
                        classify_network_error(e))
            if attempt < max_retries:
                sleep(retry_delay)
            continue

        if has_login_markers(html):
            log.warning("  Got the login page, session expired.")
            return SessionExpired(target)

        if expected not in html:
            mismatched = True
            log.info("  Attempt %d/%d (%s): date mismatch, expected %r.", attempt, max_retries, date_param, expected)
            continue

        closed = find_closed_notice(html)
        if closed:
            message, countdown = closed
            log.info("  Bookings not open yet: %s %s", message, countdown)
            return CatalogClosed(target, message, countdown)

        slots = parse_slots(html)
        log.info("  Tee sheet for %s has %d bookable slots (attempt %d).", date_param, len(slots), attempt)
        return CatalogOpen(target, slots)

    if mismatched or last_error is None:
        raise DateMismatchError(f"Date mismatch: expected {expected} but the portal returned a different date")
    kind = classify_network_error(last_error)
    raise NetworkError(f"Network error after {max_retries} attempts: {kind} ({last_error})", kind=kind)
