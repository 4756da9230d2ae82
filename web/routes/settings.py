"""Account and health routes: /api/settings, /api/settings/*, /api/health"""

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from booker import service
from booker.exceptions import AuthError
from web.auth import require_auth

router = APIRouter()


class Credentials(BaseModel):
    username: str
    password: str


@router.get("/settings")
def settings(_user: str = Depends(require_auth)):
    return service.get_settings()


@router.post("/settings/credentials")
def settings_credentials(body: Credentials, _user: str = Depends(require_auth)):
    if not body.username or not body.password:
        raise HTTPException(status_code=400, detail="Username and password required")
    try:
        service.save_credentials(body.username, body.password)
    except AuthError as e:
        raise HTTPException(status_code=400, detail=f"Authentication failed: {e}")
    return {"success": True, "message": "Credentials verified and saved."}


@router.get("/health")
def health():
    return service.health()
