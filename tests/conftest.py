"""Shared test fixtures: scripted HTTP session, in-memory storage, scripted booker."""

import json
from dataclasses import dataclass, field
from datetime import date, datetime

import pytest
import requests
from requests.cookies import RequestsCookieJar

from booker import booking, manual, recurring, service
from booker.booking import Booker
from booker.models import Guest, SlotRecord


# ── HTTP ─────────────────────────────────────────────────────────────────────

class FakeResponse:
    def __init__(self, text: str = "", json_data=None, status_code: int = 200):
        self.text = text
        self._json = json_data
        self.status_code = status_code

    def json(self):
        if self._json is None:
            raise ValueError("No JSON body")
        return self._json

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")


def ajax_reply(payload: dict) -> FakeResponse:
    """The login service's shape: a JSON string holding a one-element list, under ``d``."""
    return FakeResponse(json_data={"d": json.dumps([payload])})


@dataclass
class FakeHttp:
    """Stands in for requests.Session.

    ``handler(method, url, kwargs)`` returns a FakeResponse or an exception
    instance, which is raised.
    """

    handler: object = None
    calls: list[tuple[str, str, dict]] = field(default_factory=list)
    headers: dict = field(default_factory=dict)
    cookies: RequestsCookieJar = field(default_factory=RequestsCookieJar)

    def _call(self, method: str, url: str, kwargs: dict):
        self.calls.append((method, url, kwargs))
        result = self.handler(method, url, kwargs)
        if isinstance(result, Exception):
            raise result
        return result

    def get(self, url, **kwargs):
        return self._call("GET", url, kwargs)

    def post(self, url, **kwargs):
        return self._call("POST", url, kwargs)


class SleepRecorder:
    def __init__(self):
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


# ── Storage ──────────────────────────────────────────────────────────────────

@dataclass
class InMemoryDB:
    """In-memory stand-in for booker.db with the same function signatures."""

    clock: datetime = datetime(2025, 9, 1, 10, 0)
    requests: dict[int, dict] = field(default_factory=dict)
    history: list[dict] = field(default_factory=list)
    guests: list[dict] = field(default_factory=list)
    settings: dict = field(default_factory=lambda: {
        "is_enabled": 1,
        "weekdays": "sat,sun",
        "earliest_time": "07:50",
        "latest_time": "14:30",
        "max_outstanding": 4,
    })
    last_booked: dict[str, date] = field(default_factory=dict)
    credentials: tuple[str, str] = ("member", "secret")
    session: tuple[str | None, str | None] = (None, None)
    healthy: bool = True

    def now(self) -> datetime:
        return self.clock

    def init_db(self) -> None:
        pass

    def ping(self) -> bool:
        if not self.healthy:
            raise ConnectionError("database unreachable")
        return True

    # requests

    def create_request(self, data: dict) -> int:
        request_id = max(self.requests, default=0) + 1
        self.requests[request_id] = {
            "id": request_id,
            "target_date": data["target_date"],
            "earliest_time": data["earliest_time"],
            "latest_time": data["latest_time"],
            "status": data.get("status", "pending"),
            "kind": data.get("kind", "manual"),
            "attempts": data.get("attempts", 0),
            "last_attempt": data.get("last_attempt"),
            "window_opens_at": data["window_opens_at"],
            "booked_time": data.get("booked_time"),
            "created_at": self.clock,
        }
        return request_id

    def get_request(self, request_id: int) -> dict | None:
        row = self.requests.get(request_id)
        return dict(row) if row else None

    def get_request_by_date(self, target_date: date) -> dict | None:
        for row in self.requests.values():
            if row["target_date"] == target_date:
                return dict(row)
        return None

    def get_requests_from(self, start: date) -> list[dict]:
        rows = [dict(r) for r in self.requests.values() if r["target_date"] >= start]
        return sorted(rows, key=lambda r: (r["target_date"], r["earliest_time"]))

    def get_open_requests(self, start: date) -> list[dict]:
        rows = [r for r in self.get_requests_from(start) if r["status"] in ("pending", "failed")]
        return sorted(rows, key=lambda r: r["window_opens_at"])

    def delete_request(self, request_id: int) -> bool:
        return self.requests.pop(request_id, None) is not None

    def claim_request(self, request_id: int, claimed_at: datetime, cooldown_cutoff: datetime | None) -> bool:
        row = self.requests.get(request_id)
        if not row or row["status"] not in ("pending", "failed"):
            return False
        if cooldown_cutoff is not None and row["last_attempt"] and row["last_attempt"] >= cooldown_cutoff:
            return False
        row["attempts"] += 1
        row["last_attempt"] = claimed_at
        return True

    def finish_request(self, request_id: int, status: str, booked_time: str | None = None) -> None:
        row = self.requests[request_id]
        row["status"] = status
        row["booked_time"] = booked_time

    # history

    def log_attempt(self, target_date, day_label, mode, outcome, message=None, booked_time=None,
                    attempts=1, request_id=None, window_opened_at=None) -> int:
        entry = {
            "id": len(self.history) + 1,
            "target_date": target_date,
            "day_label": day_label,
            "mode": mode,
            "outcome": outcome,
            "message": message,
            "booked_time": booked_time,
            "attempts": attempts,
            "request_id": request_id,
            "window_opened_at": window_opened_at,
            "created_at": self.clock,
        }
        self.history.append(entry)
        return entry["id"]

    def outcomes(self, target_date: date | None = None) -> list[str]:
        return [h["outcome"] for h in self.history if target_date is None or h["target_date"] == target_date]

    def get_history_for_request(self, request_id: int, limit: int = 20) -> list[dict]:
        return [h for h in reversed(self.history) if h["request_id"] == request_id][:limit]

    def get_recent_history(self, limit: int = 50, modes=None) -> list[dict]:
        return [h for h in reversed(self.history) if not modes or h["mode"] in modes][:limit]

    def get_latest_history(self, target_date: date) -> dict | None:
        for h in reversed(self.history):
            if h["target_date"] == target_date:
                return h
        return None

    def has_outcome(self, target_date: date, outcome: str) -> bool:
        return outcome in self.outcomes(target_date)

    def count_attempts(self, target_date: date) -> int:
        return sum(1 for o in self.outcomes(target_date) if o != "started")

    # roster, settings, account

    def get_active_guests(self, limit: int) -> list[dict]:
        return self.guests[:limit]

    def get_recurring_settings(self) -> dict:
        return {**self.settings, "last_booked": dict(self.last_booked)}

    def set_recurring_enabled(self, enabled: bool) -> None:
        self.settings["is_enabled"] = int(enabled)

    def set_last_booked(self, weekday: str, target_date: date) -> None:
        self.last_booked[weekday] = target_date

    def get_credentials(self) -> tuple[str, str]:
        return self.credentials

    def get_account(self) -> dict | None:
        username = self.credentials[0]
        return {"id": 1, "username": username, "updated_at": self.clock} if username else None

    def save_credentials(self, username: str, password: str) -> None:
        self.credentials = (username, password)

    def load_session(self):
        return self.session

    def save_session(self, token: str, cookies_json: str) -> None:
        self.session = (token, cookies_json)


# ── Portal / booker ──────────────────────────────────────────────────────────

class FakePortal:
    """PortalSession stand-in that never touches the network."""

    def __init__(self, token: str = ""):
        self.http = FakeHttp()
        self.token = token
        self.logins: list[tuple[str, str]] = []
        self.invalidations = 0

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token)

    def authenticate(self, username: str, password: str) -> str:
        self.logins.append((username, password))
        self.token = f"token-{len(self.logins)}"
        return self.token

    def invalidate(self) -> None:
        self.invalidations += 1
        self.token = ""

    def export_cookies(self) -> str:
        return "[]"

    def restore(self, token, cookies_json) -> None:
        self.token = token or ""


def booked(time: str = "7:50 AM", date_text: str = "Saturday, September 6, 2025") -> dict:
    return {"success": True, "time": time, "date": date_text, "spots": 4,
            "message": f"Booked {time} on {date_text}"}


class ScriptedBooker(Booker):
    """Booker whose book() replays scripted results (dicts or exceptions)."""

    def __init__(self, results=None):
        super().__init__(portal=FakePortal(token="restored"))
        self.results = list(results or [])
        self.calls: list[tuple] = []
        self.authentications = 0

    def book(self, target, earliest, latest, fast=False, roster=None):
        self.calls.append((target, earliest, latest, fast))
        result = self.results.pop(0) if self.results else booked()
        if isinstance(result, Exception):
            raise result
        return result

    def authenticate(self) -> str:
        self.authentications += 1
        return "token"


# ── Fixtures ─────────────────────────────────────────────────────────────────

@pytest.fixture
def fake_db(monkeypatch) -> InMemoryDB:
    store = InMemoryDB()
    for module in (booking, manual, recurring, service):
        monkeypatch.setattr(module, "db", store)
    return store


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def roster() -> list[Guest]:
    return [
        Guest("Guest One", "1001_Guest"),
        Guest("Guest Two", "1002_Guest"),
        Guest("Guest Three", "1003_Guest", "209:Riding without Caddie"),
    ]


@pytest.fixture
def member(monkeypatch):
    from booker import reservation

    monkeypatch.setattr(reservation, "MEMBER_NAME", "Pat Member")
    monkeypatch.setattr(reservation, "MEMBER_ID", "2001_Member")


@pytest.fixture
def slot() -> SlotRecord:
    return SlotRecord(course_id="95", date="9/6/2025", time="7:50 AM", tee="1", players=0, available=4)


def descriptor(time: str, players: int, available: int, tee: str = "1", day: str = "9/6/2025") -> str:
    return f"LaunchReserver('95', '{day}', '{time}', '{tee}', '{players}', '{available}')"


def tee_sheet(heading: str, *descriptors: str) -> str:
    rows = "\n".join(f'<tr><td><a href="#" onclick="{d}; return false;">Book</a></td></tr>' for d in descriptors)
    return f"<html><body><h2>{heading}</h2><table>{rows}</table></body></html>"
