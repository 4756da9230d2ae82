"""Operations exposed to the web API and CLI. Thin calls into the components."""

import logging
from datetime import date

from config import DEFAULT_EARLIEST, DEFAULT_LATEST
from booker import db
from booker import scheduler as sched
from booker.auth import PortalSession
from booker import recurring
from booker.selector import time_to_minutes
from booker.windows import window_opens_at

log = logging.getLogger(__name__)


class RequestConflict(ValueError):
    """A request for that date already exists."""


def create_request(target_date: date, earliest: str | None = None, latest: str | None = None) -> dict:
    earliest = earliest or DEFAULT_EARLIEST
    latest = latest or DEFAULT_LATEST
    lo, hi = time_to_minutes(earliest), time_to_minutes(latest)
    if lo is None or hi is None or lo > hi:
        raise ValueError(f"Invalid time window {earliest}-{latest}")
    if target_date < db.now().date():
        raise ValueError("Target date has already passed")
    if db.get_request_by_date(target_date):
        raise RequestConflict(f"Booking already exists for {target_date}")

    opens_at = window_opens_at(target_date)
    request_id = db.create_request({
        "target_date": target_date,
        "earliest_time": earliest,
        "latest_time": latest,
        "kind": "manual",
        "window_opens_at": opens_at,
    })
    log.info("Created request %d for %s (%s-%s), window opens %s.", request_id, target_date, earliest, latest, opens_at)
    return {"id": request_id, "opens_at": opens_at.isoformat(),
            "message": f"Booking scheduled! Will attempt at {opens_at:%Y-%m-%d %H:%M}"}


def list_requests() -> list[dict]:
    return db.get_requests_from(db.now().date())


def delete_request(request_id: int) -> bool:
    sched.remove_request_job(request_id)
    return db.delete_request(request_id)


def trigger_request(request_id: int) -> dict | None:
    if not db.get_request(request_id):
        return None
    return sched.trigger_request(request_id)


def get_request_history(request_id: int) -> list[dict]:
    return db.get_history_for_request(request_id)


def get_upcoming_occurrences() -> list[dict]:
    return recurring.get_upcoming_occurrences()


def get_occurrence_history(limit: int = 50) -> list[dict]:
    return recurring.get_occurrence_history(limit)


def set_recurring_enabled(enabled: bool) -> dict:
    db.set_recurring_enabled(enabled)
    log.info("Recurring booking %s.", "enabled" if enabled else "disabled")
    return db.get_recurring_settings()


def get_settings() -> dict:
    """Stored portal username. The password never leaves the database."""
    row = db.get_account()
    if not row or not row["username"]:
        return {"username": ""}
    updated = row["updated_at"]
    return {"username": row["username"], "updated_at": updated.isoformat() if updated else None}


def save_credentials(username: str, password: str) -> None:
    """Verify the credentials with a throwaway session, then store them.

    Raises AuthError if the portal rejects them.
    """
    PortalSession().authenticate(username, password)
    db.save_credentials(username, password)
    sched.booker.drop_session()


def health() -> dict:
    try:
        database = "connected" if db.ping() else "disconnected"
    except Exception as e:
        log.warning("Database ping failed: %s", e)
        database = "disconnected"
    return {
        "status": "ok",
        "timestamp": db.now().isoformat(),
        "database": database,
        "scheduler": "running" if sched.scheduler.running else "stopped",
        "booking_in_progress": sched.booker.busy,
    }

