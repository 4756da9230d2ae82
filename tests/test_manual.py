"""Tests for one-off booking requests."""

from datetime import date, datetime, timedelta

import pytest

from booker.exceptions import NoSlotInRangeError, SlotUnavailableError
from booker.manual import attempt_request, check_requests, evaluate_request
from tests.conftest import ScriptedBooker, booked

NOW = datetime(2025, 8, 30, 6, 29, 0)
OPENS = datetime(2025, 8, 30, 6, 30, 0)
TARGET = date(2025, 9, 6)


def request(**overrides) -> dict:
    row = {
        "id": 1,
        "target_date": TARGET,
        "earliest_time": "07:54",
        "latest_time": "13:00",
        "status": "pending",
        "kind": "manual",
        "attempts": 0,
        "last_attempt": None,
        "window_opens_at": OPENS,
    }
    row.update(overrides)
    return row


def add_request(store, **overrides) -> int:
    row = request(**overrides)
    return store.create_request(row)


# ── Eligibility ──────────────────────────────────────────────────────────────

def test_defers_to_window_instant_inside_lead_time() -> None:
    decision = evaluate_request(request(), OPENS - timedelta(seconds=20))

    assert decision.action == "defer"
    assert decision.run_at == OPENS
    assert decision.bypass_cooldown


@pytest.mark.parametrize("seconds_before", [31, 45, 60])
def test_priority_window_ignores_recent_attempt(seconds_before: int) -> None:
    now = OPENS - timedelta(seconds=seconds_before)
    decision = evaluate_request(request(last_attempt=now - timedelta(minutes=1)), now)

    assert decision.action == "defer"
    assert decision.bypass_cooldown
    assert decision.reason.startswith("priority")


def test_waits_for_distant_window() -> None:
    decision = evaluate_request(request(), OPENS - timedelta(minutes=10))

    assert decision.action == "skip"
    assert "window opens" in decision.reason


def test_window_that_just_opened_is_left_to_the_deferred_attempt() -> None:
    assert evaluate_request(request(), OPENS + timedelta(seconds=10)).action == "skip"


def test_cooldown_after_window() -> None:
    now = OPENS + timedelta(hours=1)

    assert evaluate_request(request(last_attempt=now - timedelta(minutes=2)), now).action == "skip"
    assert evaluate_request(request(last_attempt=now - timedelta(minutes=6)), now).action == "attempt"
    assert evaluate_request(request(status="failed"), now).action == "attempt"


def test_terminal_requests_are_skipped() -> None:
    now = OPENS + timedelta(hours=1)

    assert evaluate_request(request(status="booked"), now).reason == "already booked"
    assert evaluate_request(request(target_date=date(2025, 8, 29)), now).reason == "date has passed"


# ── Attempts ─────────────────────────────────────────────────────────────────

def test_successful_attempt_is_persisted(fake_db) -> None:
    fake_db.clock = OPENS
    request_id = add_request(fake_db)
    booker = ScriptedBooker([booked("8:10 AM")])

    result = attempt_request(booker, request_id, mode="deferred", bypass_cooldown=True)

    assert result["success"]
    assert booker.calls == [(TARGET, "07:54", "13:00", False)]
    row = fake_db.requests[request_id]
    assert row["status"] == "booked"
    assert row["booked_time"] == "8:10 AM"
    assert row["attempts"] == 1
    assert row["last_attempt"] == OPENS
    assert fake_db.outcomes() == ["started", "success"]
    assert fake_db.history[-1]["request_id"] == request_id
    assert fake_db.history[-1]["day_label"] == "Saturday"


def test_failed_attempt_records_its_kind(fake_db) -> None:
    request_id = add_request(fake_db)

    result = attempt_request(ScriptedBooker([NoSlotInRangeError("No available slots")]), request_id)

    assert result == {"success": False, "outcome": "no_slots", "message": "No available slots"}
    assert fake_db.requests[request_id]["status"] == "failed"
    assert fake_db.outcomes() == ["started", "no_slots"]


def test_unexpected_error_still_recorded(fake_db) -> None:
    request_id = add_request(fake_db)

    result = attempt_request(ScriptedBooker([RuntimeError("parser blew up")]), request_id)

    assert result["outcome"] == "error"
    assert fake_db.requests[request_id]["status"] == "failed"
    assert fake_db.outcomes()[-1] == "error"


def test_cooldown_claim_refused(fake_db) -> None:
    request_id = add_request(fake_db, status="failed", last_attempt=fake_db.clock - timedelta(minutes=1))
    booker = ScriptedBooker()

    result = attempt_request(booker, request_id)

    assert result["outcome"] == "skipped"
    assert booker.calls == []
    assert fake_db.history == []


def test_bypass_ignores_cooldown(fake_db) -> None:
    request_id = add_request(fake_db, status="failed", last_attempt=fake_db.clock - timedelta(minutes=1))
    booker = ScriptedBooker()

    result = attempt_request(booker, request_id, mode="manual", bypass_cooldown=True)

    assert result["success"]
    assert len(booker.calls) == 1


def test_booked_request_cannot_be_claimed(fake_db) -> None:
    request_id = add_request(fake_db, status="booked")

    assert attempt_request(ScriptedBooker(), request_id, bypass_cooldown=True)["outcome"] == "skipped"


def test_missing_request(fake_db) -> None:
    assert attempt_request(ScriptedBooker(), 99)["outcome"] == "missing"


def test_busy_booker_skips(fake_db) -> None:
    request_id = add_request(fake_db)
    booker = ScriptedBooker()

    with booker.exclusive():
        result = attempt_request(booker, request_id)

    assert result["outcome"] == "busy"
    assert booker.calls == []
    assert fake_db.requests[request_id]["attempts"] == 0


def test_check_requests_defers_and_attempts(fake_db) -> None:
    fake_db.clock = datetime(2025, 9, 2, 6, 29, 40)
    soon = add_request(fake_db, target_date=date(2025, 9, 9), window_opens_at=datetime(2025, 9, 2, 6, 30))
    due = add_request(fake_db, target_date=date(2025, 9, 6), window_opens_at=OPENS, status="failed",
                      last_attempt=datetime(2025, 9, 1, 9, 0))
    later = add_request(fake_db, target_date=date(2025, 9, 20), window_opens_at=datetime(2025, 9, 13, 6, 30))
    deferred = []
    booker = ScriptedBooker([SlotUnavailableError("taken")])

    decisions = dict(check_requests(booker, lambda request_id, run_at: deferred.append((request_id, run_at))))

    assert deferred == [(soon, datetime(2025, 9, 2, 6, 30))]
    assert decisions[due].action == "attempt"
    assert decisions[later].action == "skip"
    assert booker.calls == [(date(2025, 9, 6), "07:54", "13:00", False)]
    assert fake_db.requests[due]["status"] == "failed"
    assert fake_db.outcomes(date(2025, 9, 6)) == ["started", "slot_unavailable"]
