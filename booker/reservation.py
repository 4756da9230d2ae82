"""Reservation submission and response classification."""

import json
import logging
import re
import time
from datetime import datetime

import requests
from bs4 import BeautifulSoup

from config import (
    BASE_URL, COURSE_NAME, GUEST_TRANSPORT, MAX_RETRIES, MEMBER_ID, MEMBER_NAME, MEMBER_TRANSPORT,
    MIN_GUESTS, PARTY_SIZE, REQUEST_TIMEOUT, RETRY_DELAY, SITE_URL,
)
from booker.catalog import TEE_SHEET_PARAMS, classify_network_error
from booker.exceptions import (
    AmbiguousResponseError, BookingRejectedError, ConfigurationError, ConfirmationMismatchError,
    NetworkError, RuleConflictError, SlotUnavailableError, WeekdayRestrictionError,
)
from booker.models import Confirmation, Guest, SlotRecord
from booker.selector import time_to_minutes

log = logging.getLogger(__name__)

DIALOG_URL = f"{BASE_URL}/dialog.aspx"
STATE_FIELDS = ("__VIEWSTATE", "__EVENTVALIDATION", "__CEVIEWSTATE")
CTRL = "ctl00$ctrl_MakeTeeTime"
CTRL_ID = "ctl00_ctrl_MakeTeeTime"
BOOK_TARGET = f"{CTRL}$lbBook"

# Script and stylesheet bundle the dialog page registers; echoed back on postback
STYLESHEET_MANAGER = (
    "Telerik.Web.UI, Version=2025.1.416.462, Culture=neutral, PublicKeyToken=121fae78165ba3d4:en-US:"
    "ced1f735-5c2a-4218-bd68-1813924fe936:1c2121e:e24b8e95:8cee9284:a3b7d93f:aac1aeb7:c73cf106;"
    "Telerik.Web.UI.Skins, Version=2025.1.416.462, Culture=neutral, PublicKeyToken=121fae78165ba3d4:en-US:"
    "ed16527b-31a8-4623-a686-9663f4c1871e:cb23ecce"
)

CONFIRMATION_MARKER = "RESERVATION CONFIRMATION"
UNAVAILABLE_MARKER = "There is not another available reservation at this timeslot"
WEEKDAY_MARKER = "did not fulfill the Weekday Booking restriction"
RULE_CONFLICT_MARKER = "Rule Conflict"

_CONFIRMED_DATE_RES = [
    re.compile(r"<td[^>]*>.*?Date.*?</td>\s*<td[^>]*>.*?<strong[^>]*>([^<]+)</strong>", re.I | re.S),
    re.compile(r"Date.*?<td[^>]*>.*?([A-Za-z]+,\s*[A-Za-z]+\s+\d+,\s*\d{4})", re.I | re.S),
]
_CONFIRMED_TIME_RES = [
    re.compile(r"<td[^>]*>.*?Time\(s\).*?</td>\s*<td[^>]*>.*?<strong[^>]*>([^<]+)</strong>", re.I | re.S),
    re.compile(r"Time\(s\).*?<td[^>]*>.*?(\d{1,2}:\d{2}\s*(?:AM|PM))", re.I | re.S),
]


# ── Form assembly ────────────────────────────────────────────────────────────

def dialog_params(slot: SlotRecord) -> dict:
    return {
        "p": "NetcaddyPop",
        "tt": "MakeTeeTime",
        "NoModResize": "1",
        "NoNav": "1",
        "ShowFooter": "False",
        "courseid": slot.course_id,
        "date": slot.date,
        "time": slot.time,
        "hole": slot.hole,
        "numholes": "0",
        "xsome": str(PARTY_SIZE),
        "startletter": "",
    }


def extract_dialog_state(html: str) -> dict[str, str]:
    """Hidden ASP.NET state fields that must be echoed back verbatim."""
    soup = BeautifulSoup(html, "html.parser")
    state = {}
    for name in STATE_FIELDS:
        field = soup.find("input", attrs={"name": name})
        state[name] = field.get("value", "") if field else ""
    return state


def _client_state(value: str, text: str, locked: bool = False) -> str:
    """Telerik combo box state. Locked combos are rendered disabled with no log."""
    return json.dumps({
        "logEntries": None if locked else [], "value": value, "text": text, "enabled": not locked,
        "checkedIndices": [], "checkedItemsTextOverflows": False,
    }, separators=(",", ":"))


def _text_state(placeholder: str) -> str:
    return json.dumps({
        "enabled": True, "emptyMessage": placeholder, "validationText": "",
        "valueAsString": "", "lastSetTextBoxValue": placeholder,
    }, separators=(",", ":"))


def _combo(name: str, text: str, client_state: str = "", mobile: bool = False,
           kind: str = "tCombo") -> list[tuple[str, str]]:
    fields = [
        (f"{CTRL}${name}${kind}", text),
        (f"{CTRL_ID}_{name}_{kind}_ClientState", client_state),
    ]
    if mobile:
        fields.append((f"{CTRL}${name}$mobileComboSelected", ""))
    return fields


def _date_box(name: str, value: str) -> list[tuple[str, str]]:
    return [
        (f"{CTRL}${name}$tMDateBox", value),
        (f"{CTRL}${name}$mobileDateBoxSelected", ""),
    ]


def _split_transport(transport: str) -> tuple[str, str]:
    value, _, text = transport.partition(":")
    return value, text


def participants(roster: list[Guest]) -> list[Guest]:
    """Member in slot 1, then the first PARTY_SIZE - 1 guests."""
    if len(roster) < MIN_GUESTS:
        raise ConfigurationError(f"Not enough guests configured ({len(roster)}/{MIN_GUESTS}).")
    if not MEMBER_NAME or not MEMBER_ID:
        raise ConfigurationError("MEMBER_NAME and MEMBER_ID must be configured.")
    member = Guest(MEMBER_NAME, MEMBER_ID, MEMBER_TRANSPORT)
    guests = [Guest(g.name, g.player_id, g.transport or GUEST_TRANSPORT) for g in roster[:PARTY_SIZE - 1]]
    return [member] + guests


def build_booking_form(slot: SlotRecord, roster: list[Guest], state: dict[str, str]) -> list[tuple[str, str]]:
    """The full MakeTeeTime postback. The portal rejects partial control sets."""
    form = [
        ("defaultSM", f"defaultSM|{BOOK_TARGET}"),
        ("rsmDefaultCSS_TSSM", STYLESHEET_MANAGER),
        ("__EVENTTARGET", BOOK_TARGET),
        ("__EVENTARGUMENT", ""),
        ("__CEVIEWSTATE", state.get("__CEVIEWSTATE", "")),
        ("__VIEWSTATE", state.get("__VIEWSTATE", "")),
    ]
    if state.get("__EVENTVALIDATION"):
        form.append(("__EVENTVALIDATION", state["__EVENTVALIDATION"]))

    form += _combo("drpStartHole", slot.tee_label, _client_state(slot.hole, slot.tee_label, locked=True), mobile=True)
    form += _combo("drpRoundLength", "Eighteen Holes")
    form += _combo("drpPartySize", "Foursome")
    form += _date_box("rdDate", slot.date)
    form += _combo("drpCourseName", COURSE_NAME)
    form += _combo("drpTime", slot.time, mobile=True)

    for n, player in enumerate(participants(roster), start=1):
        transport_value, transport_text = _split_transport(player.transport)
        prefix = f"{CTRL}$P{n}"
        form += [
            (f"{prefix}$chkNotify", "on"),
            (f"{prefix}$PCombo$PlayerName", player.name),
            (f"{CTRL_ID}_P{n}_PCombo_PlayerName_ClientState", _client_state(player.player_id, player.name)),
            (f"{prefix}$transport$oCombo", transport_text),
            (f"{CTRL_ID}_P{n}_transport_oCombo_ClientState", _client_state(transport_value, transport_text)),
            (f"{prefix}$transport$mobileComboSelected", ""),
            (f"{prefix}$groupNum", "0"),
        ]

    form.append((f"{CTRL_ID}_tsOptions_ClientState", '{"selectedIndexes":["0"],"logEntries":[],"scrollState":{}}'))
    form += _combo("drpNotEarlierThan", "")
    form += _combo("drpNotLaterThan", "")
    form += _combo("drpCourseExclude", "", mobile=True, kind="oCombo")
    for name, placeholder in (("txtComments", "Write a comment"), ("txtNotes", "Write a note")):
        form += [
            (f"{CTRL}${name}", placeholder),
            (f"{CTRL_ID}_{name}_ClientState", _text_state(placeholder)),
        ]
    form += _combo("ddlRecurr", "No Schedule")
    form += _date_box("rdRecurrEnd", "")
    form += _combo("drpStatus", "")
    form += [
        (f"{CTRL_ID}_mpOptions_ClientState", ""),
        (f"{CTRL}$playersUpdated", "1"),
        (f"{CTRL}$removePlayerNumber", "0"),
        ("PageX", "0"),
        ("PageY", "0"),
        ("__ASYNCPOST", "true"),
        ("RadAJAXControlID", "defaultRAM"),
    ]
    return form


# ── Response classification ──────────────────────────────────────────────────

def _first_group(patterns, text: str) -> str:
    for pattern in patterns:
        m = pattern.search(text)
        if m:
            return m.group(1).strip()
    return ""


def _expected_confirmation_date(slot: SlotRecord) -> str:
    d = datetime.strptime(slot.date, "%m/%d/%Y")
    return f"{d:%A}, {d:%B} {d.day}"


def dates_match(confirmed: str, expected: str) -> bool:
    """Tolerant compare: "Saturday, September 6, 2025" matches "Saturday, September 6"."""
    normalized = re.sub(r"\b0(\d)\b", r"\1", " ".join(confirmed.split()))
    return bool(normalized) and expected in normalized


def times_match(confirmed: str, requested: str) -> bool:
    a, b = time_to_minutes(confirmed), time_to_minutes(requested)
    return a is not None and a == b


def _confirm(text: str, slot: SlotRecord) -> Confirmation:
    confirmed_date = _first_group(_CONFIRMED_DATE_RES, text)
    confirmed_time = _first_group(_CONFIRMED_TIME_RES, text)
    expected = _expected_confirmation_date(slot)
    if dates_match(confirmed_date, expected) and times_match(confirmed_time, slot.time):
        return Confirmation(slot, confirmed_date, confirmed_time)
    raise ConfirmationMismatchError(
        f"Confirmation does not match request: got {confirmed_date or 'unknown date'} "
        f"{confirmed_time or 'unknown time'}, expected {expected} {slot.time}"
    )


def _reject(error_cls, message):
    def rule(text, slot):
        raise error_cls(message)
    return rule


# Ordered (predicate, outcome) rules; the first matching predicate wins.
RESPONSE_RULES = [
    (lambda text: CONFIRMATION_MARKER in text, _confirm),
    (lambda text: UNAVAILABLE_MARKER in text,
     _reject(SlotUnavailableError, "Slot no longer available - booked by someone else")),
    (lambda text: WEEKDAY_MARKER in text,
     _reject(WeekdayRestrictionError, "Weekday booking restriction for this player")),
    (lambda text: RULE_CONFLICT_MARKER in text,
     _reject(RuleConflictError, "Booking rule conflict - check restrictions")),
    (lambda text: "error" in text or "failed" in text,
     _reject(BookingRejectedError, "Booking failed - error in response")),
]


def classify_response(text: str, slot: SlotRecord) -> Confirmation:
    """Turn the submission response into a Confirmation or raise the matching BookingError."""
    for predicate, outcome in RESPONSE_RULES:
        if predicate(text):
            return outcome(text, slot)
    raise AmbiguousResponseError("Booking response unclear - not treated as booked")


# ── Submission ───────────────────────────────────────────────────────────────

def _submit_once(session: requests.Session, slot: SlotRecord, roster: list[Guest]) -> str:
    params = dialog_params(slot)
    referer = f"{SITE_URL}/Default.aspx?" + "&".join(f"{k}={v}" for k, v in TEE_SHEET_PARAMS.items())
    resp = session.get(DIALOG_URL, params=params, headers={"Referer": referer}, timeout=REQUEST_TIMEOUT)
    resp.raise_for_status()
    state = extract_dialog_state(resp.text)
    log.info("  Got booking dialog (%s).", ", ".join(k for k, v in state.items() if v) or "no state fields")

    resp = session.post(
        DIALOG_URL,
        params=params,
        data=build_booking_form(slot, roster, state),
        headers={
            "Content-Type": "application/x-www-form-urlencoded; charset=UTF-8",
            "X-Requested-With": "XMLHttpRequest",
            "X-Microsoftajax": "Delta=true",
            "Cache-Control": "no-cache",
            "Origin": BASE_URL,
            "Referer": f"{BASE_URL}/",
        },
        timeout=REQUEST_TIMEOUT,
    )
    resp.raise_for_status()
    return resp.text


def submit_reservation(session: requests.Session, slot: SlotRecord, roster: list[Guest],
                       max_retries: int = MAX_RETRIES, retry_delay: float = RETRY_DELAY,
                       sleep=time.sleep) -> Confirmation:
    """Reserve ``slot`` for the roster. Only transport failures are retried."""
    log.info("[4/5] Reserving %s on %s (%d/%d spots)...", slot.time, slot.date, slot.available, slot.total_capacity)
    participants(roster)  # fail fast on a bad roster, before touching the portal

    last_error: requests.RequestException | None = None
    for attempt in range(1, max_retries + 1):
        try:
            text = _submit_once(session, slot, roster)
        except requests.RequestException as e:
            last_error = e
            log.warning("  Attempt %d/%d failed: %s [%s]", attempt, max_retries, e, classify_network_error(e))
            if attempt < max_retries:
                sleep(retry_delay)
            continue

        log.info("[5/5] Checking reservation response (%d bytes)...", len(text))
        confirmation = classify_response(text, slot)
        log.info("  Reservation confirmed: %s at %s.", confirmation.confirmed_date, confirmation.confirmed_time)
        return confirmation

    kind = classify_network_error(last_error)
    raise NetworkError(f"Booking failed after {max_retries} attempts: {kind} ({last_error})", kind=kind)
