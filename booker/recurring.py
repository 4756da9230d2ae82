"""Recurring weekly pattern: catch-up sweep, just-in-time booking, pre-warm."""

import logging
import threading
import time
from datetime import date, datetime, timedelta

from config import (
    ATTEMPT_WAIT_SECONDS, CATCHUP_DELAY, RECURRING_DISPLAY_WEEKS, RECURRING_LOOKAHEAD_WEEKS, WINDOW_DAYS_AHEAD,
)
from booker import db
from booker.booking import Booker
from booker.exceptions import BookingError
from booker.windows import (
    day_label, day_name, is_window_open, parse_days, upcoming_occurrences, window_opens_at,
)

log = logging.getLogger(__name__)

OUTSTANDING_STATUSES = ("pending", "failed", "booked")
OCCURRENCE_MODES = ("catch-up", "just-in-time")


def load_settings() -> dict:
    settings = db.get_recurring_settings()
    settings["days"] = parse_days(settings["weekdays"])
    return settings


def count_outstanding(today: date, weekdays: list[int]) -> int:
    """Open or booked requests on pattern days that have not passed."""
    return sum(
        1 for row in db.get_requests_from(today)
        if row["target_date"].weekday() in weekdays and row["status"] in OUTSTANDING_STATUSES
    )


class RecurringOrchestrator:
    """Books every occurrence of the weekly pattern, up to the outstanding cap."""

    def __init__(self, booker: Booker, sleep=time.sleep):
        self.booker = booker
        self.sleep = sleep
        self._sweep_in_progress = threading.Lock()

    def attempt_occurrence(self, target: date, mode: str, settings: dict, wait: float = 0) -> dict | None:
        """Single entry point for occurrence attempts. Returns None when nothing was tried."""
        with self.booker.exclusive(wait) as acquired:
            if not acquired:
                log.info("Booking already in progress, skipping %s (%s).", target, mode)
                return None
            return self._attempt(target, mode, settings)

    def _attempt(self, target: date, mode: str, settings: dict) -> dict | None:
        label = day_label(target)
        log.info("[%s] Attempting to book %s %s", mode, label, target)

        if db.get_request_by_date(target):
            log.info("  %s %s already has a booking.", label, target)
            db.log_attempt(target, label, mode, "already_booked", "Booking already exists")
            return None
        if mode == "catch-up" and db.has_outcome(target, "no_slots"):
            log.info("  %s %s already attempted (no slots), skipping.", label, target)
            return None
        outstanding = count_outstanding(db.now().date(), settings["days"])
        if outstanding >= settings["max_outstanding"]:
            log.info("  Already have %d/%d occurrences booked, skipping %s %s.",
                     outstanding, settings["max_outstanding"], label, target)
            return None

        history = {
            "target_date": target,
            "day_label": label,
            "mode": mode,
            "attempts": db.count_attempts(target) + 1,
            "window_opened_at": window_opens_at(target),
        }
        earliest, latest = settings["earliest_time"], settings["latest_time"]
        db.log_attempt(outcome="started", message=f"Looking for {earliest}-{latest}", **history)

        try:
            result = self.booker.book(target, earliest, latest, fast=True)
        except BookingError as e:
            db.log_attempt(outcome=e.outcome, message=str(e), **history)
            log.warning("  Failed to book %s %s (%s): %s", label, target, e.outcome, e)
            return {"success": False, "outcome": e.outcome, "message": str(e)}
        except Exception as e:
            db.log_attempt(outcome="error", message=str(e), **history)
            log.exception("  Error booking %s %s:", label, target)
            return {"success": False, "outcome": "error", "message": str(e)}

        request_id = db.create_request({
            "target_date": target,
            "earliest_time": earliest,
            "latest_time": latest,
            "status": "booked",
            "kind": "recurring",
            "attempts": history["attempts"],
            "last_attempt": db.now(),
            "window_opens_at": history["window_opened_at"],
            "booked_time": result["time"],
        })
        db.set_last_booked(day_name(target), target)
        db.log_attempt(outcome="success", message=result["message"], booked_time=result["time"],
                       request_id=request_id, **history)
        log.info("  Booked %s %s at %s.", label, target, result["time"])
        return result

    def run_catch_up(self, now: datetime | None = None) -> int:
        """Book occurrences whose window is already open. Returns bookings made."""
        if not self._sweep_in_progress.acquire(blocking=False):
            log.info("Catch-up already in progress, skipping.")
            return 0
        try:
            return self._catch_up(now or db.now())
        finally:
            self._sweep_in_progress.release()

    def _catch_up(self, now: datetime) -> int:
        settings = load_settings()
        if not settings["is_enabled"]:
            log.info("Recurring booking is disabled.")
            return 0

        today = now.date()
        cap = settings["max_outstanding"]
        outstanding = count_outstanding(today, settings["days"])
        if outstanding >= cap:
            log.info("Already have %d/%d occurrences booked, skipping catch-up.", outstanding, cap)
            return 0

        log.info("Starting catch-up (%d/%d outstanding)...", outstanding, cap)
        made = 0
        for target in upcoming_occurrences(today, settings["days"], RECURRING_LOOKAHEAD_WEEKS):
            if count_outstanding(today, settings["days"]) >= cap:
                log.info("Reached the limit of %d outstanding occurrences.", cap)
                break
            if not is_window_open(target, now):
                continue
            if db.get_request_by_date(target) or db.has_outcome(target, "no_slots"):
                continue
            result = self.attempt_occurrence(target, "catch-up", settings)
            if result and result.get("success"):
                made += 1
            self.sleep(CATCHUP_DELAY)

        log.info("Catch-up complete: %d occurrence(s) booked.", made)
        return made

    def run_just_in_time(self, now: datetime | None = None) -> dict | None:
        """Book the occurrence whose window opens right now."""
        now = now or db.now()
        settings = load_settings()
        if not settings["is_enabled"]:
            log.info("Recurring booking is disabled.")
            return None

        target = now.date() + timedelta(days=WINDOW_DAYS_AHEAD)
        if target.weekday() not in settings["days"]:
            return None

        outstanding = count_outstanding(now.date(), settings["days"])
        if outstanding >= settings["max_outstanding"]:
            log.info("Already have %d/%d occurrences booked.", outstanding, settings["max_outstanding"])
            return None

        log.info("Booking window opening for %s %s.", day_label(target), target)
        return self.attempt_occurrence(target, "just-in-time", settings, wait=ATTEMPT_WAIT_SECONDS)

    def prewarm(self) -> bool:
        """Log in shortly before the window so the handshake is not paid inside it."""
        if not load_settings()["is_enabled"]:
            return False
        with self.booker.exclusive(ATTEMPT_WAIT_SECONDS) as acquired:
            if not acquired:
                log.info("Booking in progress, skipping pre-warm.")
                return False
            log.info("Pre-warming portal session...")
            try:
                self.booker.authenticate()
            except BookingError as e:
                log.warning("Pre-warm failed: %s", e)
                return False
        log.info("Portal session pre-warmed.")
        return True


def occurrence_status(target: date, now: datetime) -> dict:
    """Status of one pattern date for display."""
    request = db.get_request_by_date(target)
    latest = db.get_latest_history(target)
    open_now = is_window_open(target, now)
    info = {
        "date": target.isoformat(),
        "day": day_label(target),
        "opens_at": window_opens_at(target).isoformat(),
        "window_open": open_now,
        "has_history": latest is not None,
        "booked_time": None,
        "kind": None,
    }

    if request:
        info["kind"] = request["kind"]
        info["booked_time"] = request.get("booked_time")
        if request["status"] == "booked":
            info.update(status="booked",
                        message="Auto-Booked" if request["kind"] == "recurring" else "Manually Booked")
        else:
            info.update(status="pending", message="Manual request pending")
        return info

    outcome = latest["outcome"] if latest else None
    if outcome == "no_slots":
        info.update(status="no_slots", kind="recurring", message="No slots in preferred time range")
    elif outcome == "success":
        info.update(status="booked", kind="recurring", message="Auto-Booked", booked_time=latest["booked_time"])
    elif outcome == "started":
        info.update(status="in_progress", kind="recurring", message="Booking attempt running")
    elif outcome is not None:
        info.update(status="failed", kind="recurring", message="Booking failed - may retry")
    elif open_now:
        info.update(status="open", message="Booking window open")
    else:
        info.update(status="scheduled", message="Will book when window opens")
    return info


def get_upcoming_occurrences(now: datetime | None = None, weeks: int = RECURRING_DISPLAY_WEEKS) -> list[dict]:
    now = now or db.now()
    settings = load_settings()
    return [occurrence_status(d, now) for d in upcoming_occurrences(now.date(), settings["days"], weeks)]


def get_occurrence_history(limit: int = 50) -> list[dict]:
    return db.get_recent_history(limit, modes=OCCURRENCE_MODES)
