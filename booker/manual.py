"""One-off booking requests: eligibility per tick and the attempt itself."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from config import REQUEST_COOLDOWN_MINUTES, REQUEST_LEAD_SECONDS, REQUEST_PRIORITY_SECONDS
from booker import db
from booker.booking import Booker
from booker.exceptions import BookingError
from booker.windows import day_label

log = logging.getLogger(__name__)

COOLDOWN = timedelta(minutes=REQUEST_COOLDOWN_MINUTES)


@dataclass(frozen=True)
class Decision:
    action: str  # "skip", "defer" or "attempt"
    reason: str
    run_at: datetime | None = None
    bypass_cooldown: bool = False


def evaluate_request(request: dict, now: datetime) -> Decision:
    """Decide what this tick should do with an open request."""
    if request["target_date"] < now.date():
        return Decision("skip", "date has passed")
    if request["status"] == "booked":
        return Decision("skip", "already booked")

    opens_at = request["window_opens_at"]
    until_open = (opens_at - now).total_seconds()

    if 0 < until_open <= REQUEST_LEAD_SECONDS:
        return Decision("defer", f"window opens in {until_open:.0f}s", opens_at, bypass_cooldown=True)
    if 0 < until_open <= REQUEST_PRIORITY_SECONDS:
        # release is imminent: ignore the cooldown and line up an attempt for the exact instant
        return Decision("defer", f"priority: window opens in {until_open:.0f}s", opens_at, bypass_cooldown=True)
    if until_open > 0:
        return Decision("skip", f"window opens at {opens_at:%Y-%m-%d %H:%M}")
    if -until_open <= REQUEST_LEAD_SECONDS:
        return Decision("skip", "window just opened")

    last_attempt = request.get("last_attempt")
    if last_attempt and now - last_attempt < COOLDOWN:
        return Decision("skip", f"cooldown until {last_attempt + COOLDOWN:%H:%M:%S}")
    return Decision("attempt", "window open")


def attempt_request(booker: Booker, request_id: int, mode: str = "auto",
                    bypass_cooldown: bool = False, wait: float = 0) -> dict:
    """Run one booking attempt for a stored request and persist the outcome."""
    with booker.exclusive(wait) as acquired:
        if not acquired:
            log.info("Request %d: another booking attempt is in progress, skipping.", request_id)
            return {"success": False, "outcome": "busy", "message": "Another booking attempt is in progress"}
        return _attempt(booker, request_id, mode, bypass_cooldown)


def _attempt(booker: Booker, request_id: int, mode: str, bypass_cooldown: bool) -> dict:
    request = db.get_request(request_id)
    if not request:
        log.error("Request %d not found, skipping.", request_id)
        return {"success": False, "outcome": "missing", "message": "Request not found"}

    claimed_at = db.now()
    cutoff = None if bypass_cooldown else claimed_at - COOLDOWN
    if not db.claim_request(request_id, claimed_at, cutoff):
        log.info("Request %d: not claimable (booked or cooling down), skipping.", request_id)
        return {"success": False, "outcome": "skipped", "message": "Request is booked or cooling down"}

    target = request["target_date"]
    history = {
        "target_date": target,
        "day_label": day_label(target),
        "mode": mode,
        "attempts": request["attempts"] + 1,
        "request_id": request_id,
        "window_opened_at": request["window_opens_at"],
    }
    db.log_attempt(outcome="started", message=f"Booking attempt {history['attempts']} started", **history)
    log.info("Request %d: attempting %s between %s and %s (%s).", request_id, target,
             request["earliest_time"], request["latest_time"], mode)

    try:
        result = booker.book(target, request["earliest_time"], request["latest_time"])
    except BookingError as e:
        db.finish_request(request_id, "failed")
        db.log_attempt(outcome=e.outcome, message=str(e), **history)
        log.warning("Request %d failed (%s): %s", request_id, e.outcome, e)
        return {"success": False, "outcome": e.outcome, "message": str(e)}
    except Exception as e:
        db.finish_request(request_id, "failed")
        db.log_attempt(outcome="error", message=str(e), **history)
        log.exception("Request %d error:", request_id)
        return {"success": False, "outcome": "error", "message": str(e)}

    db.finish_request(request_id, "booked", result["time"])
    db.log_attempt(outcome="success", message=result["message"], booked_time=result["time"], **history)
    log.info("Request %d booked: %s", request_id, result["message"])
    return result


def check_requests(booker: Booker, defer, now: datetime | None = None) -> list[tuple[int, Decision]]:
    """One scheduler tick over every open request.

    ``defer(request_id, run_at)`` lines up a one-shot attempt at the window
    instant; due requests are attempted in place.
    """
    now = now or db.now()
    decisions = []
    for request in db.get_open_requests(now.date()):
        decision = evaluate_request(request, now)
        decisions.append((request["id"], decision))
        if decision.action == "defer":
            log.info("Request %d: %s, deferring attempt to %s.", request["id"], decision.reason, decision.run_at)
            defer(request["id"], decision.run_at)
        elif decision.action == "attempt":
            attempt_request(booker, request["id"], mode="auto", bypass_cooldown=decision.bypass_cooldown)
        else:
            log.debug("Request %d: %s.", request["id"], decision.reason)
    return decisions
