"""Runtime configuration for the tee time booker, read from the environment."""

import os

from dotenv import load_dotenv

load_dotenv()


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


def _env_float(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


# ── Portal ───────────────────────────────────────────────────────────────────

BASE_URL = os.getenv("BASE_URL", "https://www.trumpcoltsneck.com")
SITE_URL = os.getenv("SITE_URL", f"{BASE_URL}/sites/TrumpNationalGolfClub2016ColtsNeck")
COURSE_ID = os.getenv("COURSE_ID", "95")
COURSE_NAME = os.getenv("COURSE_NAME", "Trump National Colts Neck")
USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"
REQUEST_TIMEOUT = _env_float("REQUEST_TIMEOUT", 10.0)

# Page content that means we were bounced back to the login form
LOGIN_MARKERS = ("txtUsername", "Login")

# ── Account / roster ─────────────────────────────────────────────────────────

PORTAL_USERNAME = os.getenv("PORTAL_USERNAME", "")
PORTAL_PASSWORD = os.getenv("PORTAL_PASSWORD", "")
MEMBER_NAME = os.getenv("MEMBER_NAME", "")
MEMBER_ID = os.getenv("MEMBER_ID", "")
MEMBER_TRANSPORT = os.getenv("MEMBER_TRANSPORT", "209:Riding without Caddie")
GUEST_TRANSPORT = os.getenv("GUEST_TRANSPORT", "205:Riding with Caddie")
MIN_GUESTS = _env_int("MIN_GUESTS", 3)
PARTY_SIZE = _env_int("PARTY_SIZE", 4)

# ── Retry policy ─────────────────────────────────────────────────────────────

MAX_RETRIES = _env_int("MAX_RETRIES", 10)
RETRY_DELAY = _env_float("RETRY_DELAY", 2.0)
PADDED_DATE_AFTER = 5  # attempts 1..5 send 9/6/2025, later ones 09/06/2025

# ── Booking window ───────────────────────────────────────────────────────────

TIMEZONE = os.getenv("TIMEZONE", "America/New_York")
WINDOW_DAYS_AHEAD = _env_int("WINDOW_DAYS_AHEAD", 7)
WINDOW_OPEN_HOUR = _env_int("WINDOW_OPEN_HOUR", 6)
WINDOW_OPEN_MINUTE = _env_int("WINDOW_OPEN_MINUTE", 30)
PREWARM_SECONDS = _env_int("PREWARM_SECONDS", 60)
ATTEMPT_WAIT_SECONDS = _env_float("ATTEMPT_WAIT_SECONDS", 120.0)

# ── Manual requests ──────────────────────────────────────────────────────────

DEFAULT_EARLIEST = os.getenv("DEFAULT_EARLIEST", "07:54")
DEFAULT_LATEST = os.getenv("DEFAULT_LATEST", "13:00")
REQUEST_LEAD_SECONDS = 30
REQUEST_PRIORITY_SECONDS = 60
REQUEST_COOLDOWN_MINUTES = 5

# ── Recurring mode ───────────────────────────────────────────────────────────

RECURRING_DAYS = os.getenv("RECURRING_DAYS", "sat,sun")
RECURRING_EARLIEST = os.getenv("RECURRING_EARLIEST", "07:50")
RECURRING_LATEST = os.getenv("RECURRING_LATEST", "14:30")
RECURRING_MAX_OUTSTANDING = _env_int("RECURRING_MAX_OUTSTANDING", 4)
RECURRING_LOOKAHEAD_WEEKS = 6
RECURRING_DISPLAY_WEEKS = 4
CATCHUP_DELAY = _env_float("CATCHUP_DELAY", 5.0)
CATCHUP_MINUTES = os.getenv("CATCHUP_MINUTES", "15,45")

# ── Database ─────────────────────────────────────────────────────────────────

DB_HOST = os.getenv("DB_HOST", "localhost")
DB_PORT = _env_int("DB_PORT", 3306)
DB_NAME = os.getenv("DB_NAME", "golf_booking")
DB_USER = os.getenv("DB_USER", "root")
DB_PASS = os.getenv("DB_PASS", "")

# ── Dashboard ────────────────────────────────────────────────────────────────

DASHBOARD_USER = os.getenv("DASHBOARD_USER", "admin")
DASHBOARD_PASS = os.getenv("DASHBOARD_PASS", "")
