"""Portal login handshake and session ownership."""

import json
import logging
import random
from urllib.parse import quote, unquote

import requests

from config import BASE_URL, LOGIN_MARKERS, REQUEST_TIMEOUT, SITE_URL, USER_AGENT
from booker.exceptions import AuthError

log = logging.getLogger(__name__)

LOGIN_SERVICE = f"{BASE_URL}/a_master/net/net_advancedlogin/login.asmx"

AJAX_HEADERS = {
    "Content-Type": "application/json; charset=utf-8",
    "X-Requested-With": "XMLHttpRequest",
}


def rc4(key: str, text: str) -> bytes:
    """RC4 over the low byte of each character, matching the portal's login script."""
    key_codes = [ord(c) & 0xFF for c in key]
    s = list(range(256))
    j = 0
    for i in range(256):
        j = (j + s[i] + key_codes[i % len(key_codes)]) % 256
        s[i], s[j] = s[j], s[i]

    out = bytearray()
    i = j = 0
    for c in text:
        i = (i + 1) % 256
        j = (j + s[i]) % 256
        s[i], s[j] = s[j], s[i]
        out.append((ord(c) & 0xFF) ^ s[(s[i] + s[j]) % 256])
    return bytes(out)


def encrypt_field(key: str, text: str) -> str:
    """RC4-encrypt and encode as lowercase hex."""
    return rc4(key, text).hex()


def has_login_markers(html: str) -> bool:
    return any(marker in html for marker in LOGIN_MARKERS)


def new_http_session() -> requests.Session:
    session = requests.Session()
    session.headers.update({"User-Agent": USER_AGENT})
    return session


def _login_step(session: requests.Session, step: str, payload: dict) -> dict:
    """POST one login step. The service wraps a one-element JSON list in ``d``."""
    resp = session.post(
        f"{LOGIN_SERVICE}/{step}",
        data=json.dumps(payload),
        headers=AJAX_HEADERS,
        params={"r": random.randint(0, 999)},
        timeout=REQUEST_TIMEOUT,
    )
    try:
        return json.loads(resp.json()["d"])[0]
    except (ValueError, KeyError, IndexError, TypeError) as e:
        raise AuthError(f"Unexpected {step} response: {resp.text[:200]}") from e


def login(session: requests.Session, username: str, password: str) -> str:
    """Run the key exchange handshake. Returns the session token."""
    log.info("[1/5] Authenticating as %s...", username)
    try:
        key_data = _login_step(session, "loginStep1", {"lstep": 1})
        if not key_data.get("key"):
            raise AuthError(key_data.get("error") or key_data.get("msg") or "Portal returned no login key.")
        key = unquote(key_data["key"])
        cip = key_data.get("cip") or ""
        log.info("  Got encryption key.")

        token_data = _login_step(session, "loginStep2", {
            "id": quote(encrypt_field(key, username)),
            "pw": quote(encrypt_field(key, password)),
            "url": "",
            "cip": quote(encrypt_field(key, cip)) if cip else "",
        })
        token = token_data.get("token")
        if not token:
            raise AuthError(token_data.get("error") or token_data.get("msg") or "Portal returned no session token.")
        log.info("  Got session token.")

        # Cookies are bound per sub-path, so both entry points have to be visited
        session.get(
            f"{BASE_URL}/default.aspx",
            params={"login": "true", "sessionToken": token, "gotopage": "p=MembersDefault"},
            timeout=REQUEST_TIMEOUT,
        )
        resp = session.get(f"{SITE_URL}/Default.aspx", params={"p": "MembersDefault"}, timeout=REQUEST_TIMEOUT)
    except requests.RequestException as e:
        raise AuthError(f"Login request failed: {e}") from e

    if has_login_markers(resp.text):
        raise AuthError("Login failed - still showing login page.")
    log.info("  Logged in successfully (%d cookies).", len(session.cookies))
    return token


class PortalSession:
    """Owns the HTTP session and token used for every portal call."""

    def __init__(self, http: requests.Session | None = None):
        self.http = http or new_http_session()
        self.token = ""

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token)

    def authenticate(self, username: str, password: str) -> str:
        self.http.cookies.clear()
        self.token = ""
        self.token = login(self.http, username, password)
        return self.token

    def invalidate(self) -> None:
        self.token = ""
        self.http.cookies.clear()

    def export_cookies(self) -> str:
        return json.dumps([
            {"name": c.name, "value": c.value, "domain": c.domain, "path": c.path}
            for c in self.http.cookies
        ])

    def restore(self, token: str | None, cookies_json: str | None) -> None:
        """Load a persisted token and cookie jar. Stale sessions surface later as login pages."""
        if not token:
            return
        for c in json.loads(cookies_json or "[]"):
            self.http.cookies.set(c["name"], c["value"], domain=c.get("domain", ""), path=c.get("path", "/"))
        self.token = token
        log.info("Restored portal session (%d cookies).", len(self.http.cookies))
