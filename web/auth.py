"""HTTP Basic Auth guarding every /api route."""

import secrets

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from config import DASHBOARD_PASS, DASHBOARD_USER

security = HTTPBasic()


def _matches(given: str, expected: str) -> bool:
    return secrets.compare_digest(given.encode(), expected.encode())


def require_auth(credentials: HTTPBasicCredentials = Depends(security)) -> str:
    """Returns the username, or rejects the request.

    With no DASHBOARD_PASS configured the API stays locked instead of open.
    """
    if not DASHBOARD_PASS:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="DASHBOARD_PASS is not configured",
        )
    user_ok = _matches(credentials.username, DASHBOARD_USER)
    pass_ok = _matches(credentials.password, DASHBOARD_PASS)
    if not (user_ok and pass_ok):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
            headers={"WWW-Authenticate": "Basic"},
        )
    return credentials.username
