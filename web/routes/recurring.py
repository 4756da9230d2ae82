"""Recurring pattern routes: /api/recurring/*"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from booker import service
from web.auth import require_auth

router = APIRouter()


class RecurringToggle(BaseModel):
    enabled: bool


@router.get("/recurring/upcoming")
def recurring_upcoming(_user: str = Depends(require_auth)):
    return service.get_upcoming_occurrences()


@router.get("/recurring/history")
def recurring_history(limit: int = 50, _user: str = Depends(require_auth)):
    return service.get_occurrence_history(limit)


@router.put("/recurring/enabled")
def recurring_toggle(body: RecurringToggle, _user: str = Depends(require_auth)):
    return service.set_recurring_enabled(body.enabled)
