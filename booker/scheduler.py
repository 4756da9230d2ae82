"""APScheduler integration: request ticks, catch-up sweeps and window triggers."""

import logging
from datetime import datetime, timedelta

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger

from config import (
    ATTEMPT_WAIT_SECONDS, CATCHUP_MINUTES, PREWARM_SECONDS, RECURRING_DAYS, TIMEZONE,
    WINDOW_OPEN_HOUR, WINDOW_OPEN_MINUTE,
)
from booker import db
from booker.booking import Booker
from booker.manual import attempt_request, check_requests
from booker.recurring import RecurringOrchestrator
from booker.windows import parse_days, trigger_days

log = logging.getLogger(__name__)

scheduler = BackgroundScheduler(timezone=TIMEZONE)
booker = Booker()
orchestrator = RecurringOrchestrator(booker)


def _request_job_id(request_id: int) -> str:
    return f"request_{request_id}"


def run_deferred_attempt(request_id: int) -> None:
    """Fires at the window instant. Waits for the guard rather than skipping."""
    attempt_request(booker, request_id, mode="deferred", bypass_cooldown=True, wait=ATTEMPT_WAIT_SECONDS)


def defer_request(request_id: int, run_at: datetime) -> None:
    """Line up one attempt at ``run_at``. Repeated ticks replace the same job."""
    scheduler.add_job(
        run_deferred_attempt,
        trigger=DateTrigger(run_date=run_at, timezone=TIMEZONE),
        args=[request_id],
        id=_request_job_id(request_id),
        name=f"Deferred attempt for request {request_id}",
        replace_existing=True,
        misfire_grace_time=ATTEMPT_WAIT_SECONDS,
    )


def run_request_check() -> None:
    try:
        check_requests(booker, defer_request)
    except Exception:
        log.exception("Request check failed:")


def run_catch_up() -> None:
    try:
        orchestrator.run_catch_up()
    except Exception:
        log.exception("Catch-up failed:")


def run_just_in_time() -> None:
    try:
        orchestrator.run_just_in_time()
    except Exception:
        log.exception("Just-in-time booking failed:")


def run_prewarm() -> None:
    try:
        orchestrator.prewarm()
    except Exception:
        log.exception("Pre-warm failed:")


def trigger_request(request_id: int) -> dict:
    """Manual trigger from the API: one attempt now, cooldown ignored."""
    return attempt_request(booker, request_id, mode="manual", bypass_cooldown=True)


def remove_request_job(request_id: int) -> None:
    job_id = _request_job_id(request_id)
    if scheduler.get_job(job_id):
        scheduler.remove_job(job_id)


def _window_triggers() -> tuple[CronTrigger, CronTrigger]:
    """Pre-warm and just-in-time triggers on the days the pattern's windows open."""
    days = trigger_days(parse_days(db.get_recurring_settings().get("weekdays") or RECURRING_DAYS))
    opens = datetime(2000, 1, 1, WINDOW_OPEN_HOUR, WINDOW_OPEN_MINUTE)
    warm = opens - timedelta(seconds=PREWARM_SECONDS)
    prewarm = CronTrigger(day_of_week=days, hour=warm.hour, minute=warm.minute, second=warm.second,
                          timezone=TIMEZONE)
    window = CronTrigger(day_of_week=days, hour=opens.hour, minute=opens.minute, second=0, timezone=TIMEZONE)
    return prewarm, window


def register_jobs() -> None:
    scheduler.add_job(run_request_check, CronTrigger(second=0, timezone=TIMEZONE),
                      id="request_check", name="Check booking requests", replace_existing=True,
                      max_instances=1, coalesce=True)
    scheduler.add_job(run_catch_up, CronTrigger(minute=CATCHUP_MINUTES, timezone=TIMEZONE),
                      id="catch_up", name="Recurring catch-up", replace_existing=True,
                      max_instances=1, coalesce=True)

    prewarm, window = _window_triggers()
    scheduler.add_job(run_prewarm, prewarm, id="prewarm", name="Pre-warm session", replace_existing=True)
    scheduler.add_job(run_just_in_time, window, id="just_in_time", name="Just-in-time booking",
                      replace_existing=True, misfire_grace_time=ATTEMPT_WAIT_SECONDS)
    log.info("Window triggers: pre-warm %s, booking %s", prewarm, window)


def start() -> None:
    db.init_db()
    booker.restore_session()
    register_jobs()
    # pick up occurrences that opened while the process was down
    scheduler.add_job(run_catch_up, DateTrigger(run_date=db.now() + timedelta(seconds=30), timezone=TIMEZONE),
                      id="startup_catch_up", name="Startup catch-up", replace_existing=True)
    scheduler.start()
    log.info("Scheduler started.")


def shutdown() -> None:
    scheduler.shutdown(wait=False)
    log.info("Scheduler shut down.")
