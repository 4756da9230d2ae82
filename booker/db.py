"""MariaDB storage for booking requests, attempt history, roster and settings."""

import base64
from datetime import date, datetime
from zoneinfo import ZoneInfo

import pymysql
import pymysql.cursors

from config import (
    DB_HOST, DB_PORT, DB_NAME, DB_USER, DB_PASS, PORTAL_PASSWORD, PORTAL_USERNAME,
    RECURRING_DAYS, RECURRING_EARLIEST, RECURRING_LATEST, RECURRING_MAX_OUTSTANDING, TIMEZONE,
)

_TZ = ZoneInfo(TIMEZONE)


def now() -> datetime:
    """Naive wall-clock time in the portal's timezone, as stored in DATETIME columns."""
    return datetime.now(_TZ).replace(tzinfo=None, microsecond=0)


def get_connection() -> pymysql.Connection:
    return pymysql.connect(
        host=DB_HOST,
        port=DB_PORT,
        database=DB_NAME,
        user=DB_USER,
        password=DB_PASS,
        cursorclass=pymysql.cursors.DictCursor,
        autocommit=False,
    )


def init_db() -> None:
    conn = get_connection()
    with conn.cursor() as cur:
        cur.execute("""
            CREATE TABLE IF NOT EXISTS booking_requests (
                id              INT AUTO_INCREMENT PRIMARY KEY,
                target_date     DATE NOT NULL UNIQUE,
                earliest_time   VARCHAR(8) NOT NULL,
                latest_time     VARCHAR(8) NOT NULL,
                status          VARCHAR(20) NOT NULL DEFAULT 'pending',
                kind            VARCHAR(20) NOT NULL DEFAULT 'manual',
                attempts        INT NOT NULL DEFAULT 0,
                last_attempt    DATETIME,
                window_opens_at DATETIME NOT NULL,
                booked_time     VARCHAR(20),
                created_at      DATETIME NOT NULL
            ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4
        """)
        cur.execute("""
            CREATE TABLE IF NOT EXISTS attempt_history (
                id              INT AUTO_INCREMENT PRIMARY KEY,
                target_date     DATE NOT NULL,
                day_label       VARCHAR(12) NOT NULL,
                request_id      INT,
                mode            VARCHAR(20) NOT NULL,
                outcome         VARCHAR(30) NOT NULL,
                booked_time     VARCHAR(20),
                attempts        INT NOT NULL DEFAULT 1,
                message         TEXT,
                window_opened_at DATETIME,
                created_at      DATETIME NOT NULL,
                INDEX idx_history_date (target_date),
                FOREIGN KEY (request_id) REFERENCES booking_requests(id) ON DELETE SET NULL
            ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4
        """)
        cur.execute("""
            CREATE TABLE IF NOT EXISTS guest_list (
                id              INT AUTO_INCREMENT PRIMARY KEY,
                name            VARCHAR(255) NOT NULL,
                player_id       VARCHAR(64) NOT NULL,
                transport       VARCHAR(100),
                is_active       TINYINT NOT NULL DEFAULT 1
            ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4
        """)
        cur.execute("""
            CREATE TABLE IF NOT EXISTS recurring_settings (
                id              INT PRIMARY KEY,
                is_enabled      TINYINT NOT NULL DEFAULT 0,
                weekdays        VARCHAR(50) NOT NULL,
                earliest_time   VARCHAR(8) NOT NULL,
                latest_time     VARCHAR(8) NOT NULL,
                max_outstanding INT NOT NULL
            ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4
        """)
        cur.execute("""
            CREATE TABLE IF NOT EXISTS recurring_last_booked (
                weekday         VARCHAR(3) PRIMARY KEY,
                target_date     DATE NOT NULL
            ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4
        """)
        cur.execute("""
            CREATE TABLE IF NOT EXISTS portal_account (
                id              INT PRIMARY KEY,
                username        VARCHAR(255),
                password_encoded VARCHAR(255),
                session_token   VARCHAR(255),
                cookies         TEXT,
                updated_at      DATETIME
            ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4
        """)
        cur.execute(
            """INSERT IGNORE INTO recurring_settings
               (id, is_enabled, weekdays, earliest_time, latest_time, max_outstanding)
               VALUES (1, 0, %s, %s, %s, %s)""",
            (RECURRING_DAYS, RECURRING_EARLIEST, RECURRING_LATEST, RECURRING_MAX_OUTSTANDING),
        )
        cur.execute("INSERT IGNORE INTO portal_account (id) VALUES (1)")
    conn.commit()
    conn.close()


# ── Booking requests ─────────────────────────────────────────────────────────

def create_request(data: dict) -> int:
    conn = get_connection()
    with conn.cursor() as cur:
        cur.execute(
            """INSERT INTO booking_requests
               (target_date, earliest_time, latest_time, status, kind, attempts,
                last_attempt, window_opens_at, booked_time, created_at)
               VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)""",
            (
                data["target_date"],
                data["earliest_time"],
                data["latest_time"],
                data.get("status", "pending"),
                data.get("kind", "manual"),
                data.get("attempts", 0),
                data.get("last_attempt"),
                data["window_opens_at"],
                data.get("booked_time"),
                now(),
            ),
        )
        conn.commit()
        request_id = cur.lastrowid
    conn.close()
    return request_id


def get_request(request_id: int) -> dict | None:
    conn = get_connection()
    with conn.cursor() as cur:
        cur.execute("SELECT * FROM booking_requests WHERE id = %s", (request_id,))
        row = cur.fetchone()
    conn.close()
    return row


def get_request_by_date(target_date: date) -> dict | None:
    conn = get_connection()
    with conn.cursor() as cur:
        cur.execute("SELECT * FROM booking_requests WHERE target_date = %s", (target_date,))
        row = cur.fetchone()
    conn.close()
    return row


def get_requests_from(start: date) -> list[dict]:
    """All requests whose date has not passed, soonest first."""
    conn = get_connection()
    with conn.cursor() as cur:
        cur.execute(
            "SELECT * FROM booking_requests WHERE target_date >= %s ORDER BY target_date, earliest_time",
            (start,),
        )
        rows = cur.fetchall()
    conn.close()
    return list(rows)


def get_open_requests(start: date) -> list[dict]:
    """Non-terminal requests (pending or failed) for dates that have not passed."""
    conn = get_connection()
    with conn.cursor() as cur:
        cur.execute(
            """SELECT * FROM booking_requests
               WHERE status IN ('pending', 'failed') AND target_date >= %s
               ORDER BY window_opens_at""",
            (start,),
        )
        rows = cur.fetchall()
    conn.close()
    return list(rows)


def delete_request(request_id: int) -> bool:
    conn = get_connection()
    with conn.cursor() as cur:
        deleted = cur.execute("DELETE FROM booking_requests WHERE id = %s", (request_id,))
    conn.commit()
    conn.close()
    return deleted > 0


def claim_request(request_id: int, claimed_at: datetime, cooldown_cutoff: datetime | None) -> bool:
    """Atomically take the next attempt for a request.

    Increments attempts and stamps last_attempt only if the request is still
    open and, unless cooldown_cutoff is None, its last attempt is older than
    the cutoff. Returns False when another tick got there first.
    """
    sql = """UPDATE booking_requests
             SET attempts = attempts + 1, last_attempt = %s
             WHERE id = %s AND status IN ('pending', 'failed')"""
    params = [claimed_at, request_id]
    if cooldown_cutoff is not None:
        sql += " AND (last_attempt IS NULL OR last_attempt < %s)"
        params.append(cooldown_cutoff)
    conn = get_connection()
    with conn.cursor() as cur:
        claimed = cur.execute(sql, params)
    conn.commit()
    conn.close()
    return claimed == 1


def finish_request(request_id: int, status: str, booked_time: str | None = None) -> None:
    conn = get_connection()
    with conn.cursor() as cur:
        cur.execute(
            "UPDATE booking_requests SET status = %s, booked_time = %s WHERE id = %s",
            (status, booked_time, request_id),
        )
    conn.commit()
    conn.close()


# ── Attempt history ──────────────────────────────────────────────────────────

def log_attempt(target_date: date, day_label: str, mode: str, outcome: str,
                message: str | None = None, booked_time: str | None = None,
                attempts: int = 1, request_id: int | None = None,
                window_opened_at: datetime | None = None) -> int:
    conn = get_connection()
    with conn.cursor() as cur:
        cur.execute(
            """INSERT INTO attempt_history
               (target_date, day_label, request_id, mode, outcome, booked_time,
                attempts, message, window_opened_at, created_at)
               VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)""",
            (target_date, day_label, request_id, mode, outcome, booked_time,
             attempts, message, window_opened_at, now()),
        )
        conn.commit()
        history_id = cur.lastrowid
    conn.close()
    return history_id


def get_history_for_request(request_id: int, limit: int = 20) -> list[dict]:
    conn = get_connection()
    with conn.cursor() as cur:
        cur.execute(
            "SELECT * FROM attempt_history WHERE request_id = %s ORDER BY id DESC LIMIT %s",
            (request_id, limit),
        )
        rows = cur.fetchall()
    conn.close()
    return list(rows)


def get_recent_history(limit: int = 50, modes: tuple[str, ...] | None = None) -> list[dict]:
    conn = get_connection()
    with conn.cursor() as cur:
        if modes:
            placeholders = ", ".join(["%s"] * len(modes))
            cur.execute(
                f"SELECT * FROM attempt_history WHERE mode IN ({placeholders}) ORDER BY id DESC LIMIT %s",
                (*modes, limit),
            )
        else:
            cur.execute("SELECT * FROM attempt_history ORDER BY id DESC LIMIT %s", (limit,))
        rows = cur.fetchall()
    conn.close()
    return list(rows)


def get_latest_history(target_date: date) -> dict | None:
    conn = get_connection()
    with conn.cursor() as cur:
        cur.execute(
            "SELECT * FROM attempt_history WHERE target_date = %s ORDER BY id DESC LIMIT 1",
            (target_date,),
        )
        row = cur.fetchone()
    conn.close()
    return row


def has_outcome(target_date: date, outcome: str) -> bool:
    conn = get_connection()
    with conn.cursor() as cur:
        cur.execute(
            "SELECT 1 FROM attempt_history WHERE target_date = %s AND outcome = %s LIMIT 1",
            (target_date, outcome),
        )
        row = cur.fetchone()
    conn.close()
    return row is not None


def count_attempts(target_date: date) -> int:
    """Number of attempts already recorded for an occurrence."""
    conn = get_connection()
    with conn.cursor() as cur:
        cur.execute(
            "SELECT COUNT(*) AS n FROM attempt_history WHERE target_date = %s AND outcome <> 'started'",
            (target_date,),
        )
        row = cur.fetchone()
    conn.close()
    return int(row["n"]) if row else 0


# ── Roster and settings ──────────────────────────────────────────────────────

def get_active_guests(limit: int) -> list[dict]:
    conn = get_connection()
    with conn.cursor() as cur:
        cur.execute("SELECT * FROM guest_list WHERE is_active = 1 ORDER BY id LIMIT %s", (limit,))
        rows = cur.fetchall()
    conn.close()
    return list(rows)


def get_recurring_settings() -> dict:
    conn = get_connection()
    with conn.cursor() as cur:
        cur.execute("SELECT * FROM recurring_settings WHERE id = 1")
        row = cur.fetchone()
        cur.execute("SELECT weekday, target_date FROM recurring_last_booked")
        markers = cur.fetchall()
    conn.close()
    settings = dict(row) if row else {
        "is_enabled": 0,
        "weekdays": RECURRING_DAYS,
        "earliest_time": RECURRING_EARLIEST,
        "latest_time": RECURRING_LATEST,
        "max_outstanding": RECURRING_MAX_OUTSTANDING,
    }
    settings["last_booked"] = {m["weekday"]: m["target_date"] for m in markers}
    return settings


def set_recurring_enabled(enabled: bool) -> None:
    conn = get_connection()
    with conn.cursor() as cur:
        cur.execute("UPDATE recurring_settings SET is_enabled = %s WHERE id = 1", (int(enabled),))
    conn.commit()
    conn.close()


def set_last_booked(weekday: str, target_date: date) -> None:
    conn = get_connection()
    with conn.cursor() as cur:
        cur.execute(
            """INSERT INTO recurring_last_booked (weekday, target_date) VALUES (%s, %s)
               ON DUPLICATE KEY UPDATE target_date = VALUES(target_date)""",
            (weekday, target_date),
        )
    conn.commit()
    conn.close()


# ── Portal account ───────────────────────────────────────────────────────────

def get_credentials() -> tuple[str, str]:
    """Stored credentials, falling back to PORTAL_USERNAME / PORTAL_PASSWORD."""
    conn = get_connection()
    with conn.cursor() as cur:
        cur.execute("SELECT username, password_encoded FROM portal_account WHERE id = 1")
        row = cur.fetchone()
    conn.close()
    if row and row["username"] and row["password_encoded"]:
        return row["username"], base64.b64decode(row["password_encoded"]).decode()
    return PORTAL_USERNAME, PORTAL_PASSWORD


def get_account() -> dict | None:
    """The stored account row without the password."""
    conn = get_connection()
    with conn.cursor() as cur:
        cur.execute("SELECT id, username, updated_at FROM portal_account WHERE id = 1")
        row = cur.fetchone()
    conn.close()
    return row


def save_credentials(username: str, password: str) -> None:
    conn = get_connection()
    with conn.cursor() as cur:
        cur.execute(
            "UPDATE portal_account SET username = %s, password_encoded = %s, updated_at = %s WHERE id = 1",
            (username, base64.b64encode(password.encode()).decode(), now()),
        )
    conn.commit()
    conn.close()


def load_session() -> tuple[str | None, str | None]:
    conn = get_connection()
    with conn.cursor() as cur:
        cur.execute("SELECT session_token, cookies FROM portal_account WHERE id = 1")
        row = cur.fetchone()
    conn.close()
    if not row:
        return None, None
    return row["session_token"], row["cookies"]


def save_session(token: str, cookies_json: str) -> None:
    conn = get_connection()
    with conn.cursor() as cur:
        cur.execute(
            "UPDATE portal_account SET session_token = %s, cookies = %s, updated_at = %s WHERE id = 1",
            (token, cookies_json, now()),
        )
    conn.commit()
    conn.close()


def ping() -> bool:
    conn = get_connection()
    with conn.cursor() as cur:
        cur.execute("SELECT 1")
    conn.close()
    return True
