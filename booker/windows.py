"""Booking window arithmetic for one-off dates and weekly patterns."""

from datetime import date, datetime, time, timedelta

from config import WINDOW_DAYS_AHEAD, WINDOW_OPEN_HOUR, WINDOW_OPEN_MINUTE

# Day name → weekday index (mon=0 … sun=6)
DAY_NAMES = ["mon", "tue", "wed", "thu", "fri", "sat", "sun"]
DAY_INDEX = {name: i for i, name in enumerate(DAY_NAMES)}
DAY_LABELS = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]


def parse_days(days: str) -> list[int]:
    """"sat,sun" → [5, 6]; unknown names are ignored."""
    result = []
    for day in days.split(","):
        day = day.strip().lower()[:3]
        if day in DAY_INDEX and DAY_INDEX[day] not in result:
            result.append(DAY_INDEX[day])
    return sorted(result)


def day_label(d: date) -> str:
    return DAY_LABELS[d.weekday()]


def day_name(d: date) -> str:
    return DAY_NAMES[d.weekday()]


def window_opens_at(target: date) -> datetime:
    """Reservations for ``target`` open WINDOW_DAYS_AHEAD days before, at the fixed time of day."""
    opens = target - timedelta(days=WINDOW_DAYS_AHEAD)
    return datetime.combine(opens, time(WINDOW_OPEN_HOUR, WINDOW_OPEN_MINUTE))


def is_window_open(target: date, now: datetime) -> bool:
    return now >= window_opens_at(target)


def trigger_days(weekdays: list[int]) -> str:
    """Cron day_of_week on which the window opens for each pattern weekday.

    Example: pattern "mon" with a 3 day offset → trigger on "fri".
    """
    names = [DAY_NAMES[(d - WINDOW_DAYS_AHEAD) % 7] for d in weekdays]
    return ",".join(names)


def upcoming_occurrences(today: date, weekdays: list[int], weeks: int) -> list[date]:
    """Every pattern date in the ``weeks`` weeks after today, in date order.

    Today itself is excluded, matching "the next N Saturdays/Sundays".
    """
    end = today + timedelta(weeks=weeks)
    days = []
    current = today + timedelta(days=1)
    while current <= end:
        if current.weekday() in weekdays:
            days.append(current)
        current += timedelta(days=1)
    return days
