"""Tests for the recurring weekly pattern."""

from datetime import date, datetime

import pytest

from booker.exceptions import AuthError, NoSlotInRangeError
from booker.recurring import (
    RecurringOrchestrator, count_outstanding, get_occurrence_history, get_upcoming_occurrences, load_settings,
    occurrence_status,
)
from booker.windows import window_opens_at
from tests.conftest import ScriptedBooker, booked

# Monday; the windows for Sat 6 and Sun 7 September are already open
NOW = datetime(2025, 9, 1, 10, 0)
SAT = date(2025, 9, 6)
SUN = date(2025, 9, 7)
WEEKEND = [5, 6]


def orchestrator(booker, sleeper) -> RecurringOrchestrator:
    return RecurringOrchestrator(booker, sleep=sleeper)


def add_booked(store, target: date, status: str = "booked", kind: str = "recurring") -> int:
    return store.create_request({
        "target_date": target,
        "earliest_time": "07:50",
        "latest_time": "14:30",
        "status": status,
        "kind": kind,
        "window_opens_at": window_opens_at(target),
        "booked_time": "8:00 AM" if status == "booked" else None,
    })


@pytest.fixture
def store(fake_db):
    fake_db.clock = NOW
    return fake_db


def test_catch_up_books_every_open_occurrence(store, sleeper) -> None:
    booker = ScriptedBooker([booked("7:50 AM"), booked("8:20 AM")])

    made = orchestrator(booker, sleeper).run_catch_up()

    assert made == 2
    assert [c[0] for c in booker.calls] == [SAT, SUN]
    # recurring attempts take the first in-range slot
    assert all(c[1:] == ("07:50", "14:30", True) for c in booker.calls)
    assert sleeper.calls == [5.0, 5.0]
    sat = store.get_request_by_date(SAT)
    assert sat["kind"] == "recurring"
    assert sat["status"] == "booked"
    assert sat["booked_time"] == "7:50 AM"
    assert store.last_booked == {"sat": SAT, "sun": SUN}
    assert store.history[-1]["request_id"] == store.get_request_by_date(SUN)["id"]


def test_catch_up_respects_outstanding_cap(store, sleeper) -> None:
    for target in (date(2025, 9, 13), date(2025, 9, 14), date(2025, 9, 20)):
        add_booked(store, target, status="pending", kind="manual")
    booker = ScriptedBooker()

    made = orchestrator(booker, sleeper).run_catch_up()

    assert made == 1
    assert [c[0] for c in booker.calls] == [SAT]
    assert count_outstanding(NOW.date(), WEEKEND) == 4


def test_catch_up_does_nothing_at_cap(store, sleeper) -> None:
    for target in (SAT, SUN, date(2025, 9, 13), date(2025, 9, 14)):
        add_booked(store, target)
    booker = ScriptedBooker()

    assert orchestrator(booker, sleeper).run_catch_up() == 0
    assert booker.calls == []


def test_catch_up_recounts_after_bookings_made_elsewhere(store, sleeper) -> None:
    add_booked(store, date(2025, 9, 13), status="pending", kind="manual")
    add_booked(store, date(2025, 9, 14), status="pending", kind="manual")

    def book_elsewhere(seconds: float) -> None:
        # a manual request on a pattern day gets booked while the sweep pauses
        sleeper(seconds)
        if not store.get_request_by_date(date(2025, 9, 20)):
            add_booked(store, date(2025, 9, 20), kind="manual")

    booker = ScriptedBooker()
    made = RecurringOrchestrator(booker, sleep=book_elsewhere).run_catch_up()

    assert made == 1
    assert [c[0] for c in booker.calls] == [SAT]
    assert count_outstanding(NOW.date(), WEEKEND) == 4


def test_occurrence_attempt_rechecks_cap_under_guard(store, sleeper) -> None:
    for target in (date(2025, 9, 13), date(2025, 9, 14), date(2025, 9, 20), date(2025, 9, 21)):
        add_booked(store, target)
    booker = ScriptedBooker()

    result = orchestrator(booker, sleeper).attempt_occurrence(SAT, "just-in-time", load_settings())

    assert result is None
    assert booker.calls == []
    assert store.history == []


def test_outstanding_ignores_other_weekdays_and_past_dates(store) -> None:
    add_booked(store, date(2025, 9, 3))
    add_booked(store, date(2025, 8, 31))
    add_booked(store, SAT)

    assert count_outstanding(NOW.date(), WEEKEND) == 1


def test_failed_attempt_does_not_count_toward_bookings(store, sleeper) -> None:
    booker = ScriptedBooker([AuthError("bad password"), booked()])

    made = orchestrator(booker, sleeper).run_catch_up()

    assert made == 1
    assert store.outcomes(SAT) == ["started", "auth_failed"]
    assert store.get_request_by_date(SAT) is None
    assert store.get_request_by_date(SUN)["status"] == "booked"


def test_catch_up_skips_no_slots_but_just_in_time_still_tries(store, sleeper) -> None:
    store.log_attempt(SAT, "Saturday", "catch-up", "no_slots", "No available slots")
    booker = ScriptedBooker()

    orchestrator(booker, sleeper).run_catch_up()

    assert [c[0] for c in booker.calls] == [SUN]

    store.requests.clear()
    booker = ScriptedBooker([NoSlotInRangeError("none")])
    result = orchestrator(booker, sleeper).run_just_in_time(datetime(2025, 8, 30, 6, 30))

    assert [c[0] for c in booker.calls] == [SAT]
    assert result["outcome"] == "no_slots"
    assert store.count_attempts(SAT) == 2


def test_just_in_time_ignores_days_outside_pattern(store, sleeper) -> None:
    booker = ScriptedBooker()

    assert orchestrator(booker, sleeper).run_just_in_time(datetime(2025, 8, 27, 6, 30)) is None
    assert booker.calls == []


def test_existing_request_is_not_booked_twice(store, sleeper) -> None:
    add_booked(store, SAT, status="pending", kind="manual")
    booker = ScriptedBooker()

    result = orchestrator(booker, sleeper).attempt_occurrence(SAT, "just-in-time", load_settings())

    assert result is None
    assert booker.calls == []
    assert store.outcomes(SAT) == ["already_booked"]


def test_disabled_pattern(store, sleeper) -> None:
    store.settings["is_enabled"] = 0
    booker = ScriptedBooker()
    orch = orchestrator(booker, sleeper)

    assert orch.run_catch_up() == 0
    assert orch.run_just_in_time(datetime(2025, 8, 30, 6, 30)) is None
    assert orch.prewarm() is False
    assert booker.calls == []


def test_busy_booker_skips_occurrence(store, sleeper) -> None:
    booker = ScriptedBooker()

    with booker.exclusive():
        made = orchestrator(booker, sleeper).run_catch_up()

    assert made == 0
    assert store.history == []


def test_prewarm_authenticates(store, sleeper) -> None:
    booker = ScriptedBooker()

    assert orchestrator(booker, sleeper).prewarm() is True
    assert booker.authentications == 1


def test_occurrence_status(store) -> None:
    add_booked(store, SAT)
    store.log_attempt(SUN, "Sunday", "catch-up", "no_slots")
    store.log_attempt(date(2025, 9, 13), "Saturday", "catch-up", "rule_conflict")

    assert occurrence_status(SAT, NOW)["status"] == "booked"
    assert occurrence_status(SAT, NOW)["message"] == "Auto-Booked"
    assert occurrence_status(SUN, NOW)["status"] == "no_slots"
    assert occurrence_status(date(2025, 9, 13), NOW)["status"] == "failed"
    assert occurrence_status(date(2025, 9, 14), NOW)["status"] == "scheduled"
    assert occurrence_status(date(2025, 9, 14), datetime(2025, 9, 7, 6, 30))["status"] == "open"


def test_upcoming_occurrences_and_history(store) -> None:
    store.log_attempt(SAT, "Saturday", "catch-up", "success", booked_time="7:50 AM")
    store.log_attempt(SAT, "Saturday", "manual", "success")

    upcoming = get_upcoming_occurrences()

    assert [o["date"] for o in upcoming] == [
        "2025-09-06", "2025-09-07", "2025-09-13", "2025-09-14",
        "2025-09-20", "2025-09-21", "2025-09-27", "2025-09-28",
    ]
    assert upcoming[0]["booked_time"] is None  # latest entry is the manual one
    assert [h["mode"] for h in get_occurrence_history()] == ["catch-up"]
