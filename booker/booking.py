"""Shared booking coordinator for the scheduler, the web API and the CLI."""

import logging
import threading
from contextlib import contextmanager
from datetime import date

from config import PARTY_SIZE
from booker import db
from booker.auth import PortalSession
from booker.catalog import fetch_catalog
from booker.exceptions import CatalogNotOpenError, ConfigurationError, SessionExpiredError
from booker.models import CatalogClosed, CatalogOpen, Guest, SessionExpired
from booker.reservation import submit_reservation
from booker.selector import select_slot, select_slot_fast

log = logging.getLogger(__name__)


def load_roster() -> list[Guest]:
    return [
        Guest(row["name"], row["player_id"], row.get("transport") or "")
        for row in db.get_active_guests(PARTY_SIZE - 1)
    ]


class Booker:
    """Owns the portal session and the guard that keeps booking attempts serial."""

    def __init__(self, portal: PortalSession | None = None):
        self.portal = portal or PortalSession()
        self._in_progress = threading.Lock()
        self._stale = False

    @property
    def busy(self) -> bool:
        return self._in_progress.locked()

    @contextmanager
    def exclusive(self, wait: float = 0):
        """Yield True if this caller holds the in-progress guard, False if it is busy."""
        if wait > 0:
            acquired = self._in_progress.acquire(timeout=wait)
        else:
            acquired = self._in_progress.acquire(blocking=False)
        try:
            yield acquired
        finally:
            if acquired:
                self._in_progress.release()

    def restore_session(self) -> None:
        token, cookies = db.load_session()
        self.portal.restore(token, cookies)

    def authenticate(self) -> str:
        username, password = db.get_credentials()
        if not username or not password:
            raise ConfigurationError("No portal credentials configured.")
        token = self.portal.authenticate(username, password)
        self._stale = False
        db.save_session(token, self.portal.export_cookies())
        return token

    def drop_session(self) -> None:
        """Forget the portal session. An attempt in flight keeps its cookies until it finishes."""
        with self.exclusive() as acquired:
            if acquired:
                self.portal.invalidate()
            else:
                self._stale = True

    def ensure_session(self) -> None:
        if self._stale or not self.portal.is_authenticated:
            self.authenticate()

    def fetch(self, target: date) -> CatalogOpen | CatalogClosed:
        """Fetch the tee sheet, re-authenticating once if the session has expired."""
        self.ensure_session()
        catalog = fetch_catalog(self.portal.http, target)
        if isinstance(catalog, SessionExpired):
            log.info("Session expired, logging in again...")
            self.portal.invalidate()
            self.authenticate()
            catalog = fetch_catalog(self.portal.http, target)
            if isinstance(catalog, SessionExpired):
                raise SessionExpiredError("Portal still shows the login page after re-authenticating.")
        return catalog

    def book(self, target: date, earliest: str, latest: str, fast: bool = False,
             roster: list[Guest] | None = None) -> dict:
        """Find the best slot for ``target`` in [earliest, latest] and reserve it.

        Returns {"success": True, "time": ..., "date": ..., "message": ...}.
        Raises BookingError on every failure.
        """
        catalog = self.fetch(target)
        if isinstance(catalog, CatalogClosed):
            raise CatalogNotOpenError(catalog.message, catalog.countdown)

        log.info("[3/5] Selecting slot between %s and %s...", earliest, latest)
        choose = select_slot_fast if fast else select_slot
        slot = choose(catalog.slots, earliest, latest)

        if roster is None:
            roster = load_roster()
        confirmation = submit_reservation(self.portal.http, slot, roster)
        return {
            "success": True,
            "time": confirmation.confirmed_time,
            "date": confirmation.confirmed_date,
            "spots": slot.available,
            "message": f"Booked {confirmation.confirmed_time} on {confirmation.confirmed_date}",
        }
