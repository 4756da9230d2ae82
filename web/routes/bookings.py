"""Booking request routes: /api/bookings/*"""

import datetime as dt
import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from booker import service
from web.auth import require_auth

log = logging.getLogger(__name__)

router = APIRouter()


class BookingRequestIn(BaseModel):
    date: dt.date
    preferred_time: str | None = None
    max_time: str | None = None


@router.get("/bookings")
def booking_list(_user: str = Depends(require_auth)):
    return service.list_requests()


@router.post("/bookings")
def booking_create(body: BookingRequestIn, _user: str = Depends(require_auth)):
    try:
        return {"success": True, **service.create_request(body.date, body.preferred_time, body.max_time)}
    except service.RequestConflict as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.delete("/bookings/{request_id}")
def booking_delete(request_id: int, _user: str = Depends(require_auth)):
    if not service.delete_request(request_id):
        raise HTTPException(status_code=404, detail="Booking not found")
    return {"success": True}


@router.post("/bookings/{request_id}/trigger")
def booking_trigger(request_id: int, _user: str = Depends(require_auth)):
    log.info("Manual trigger for request %d", request_id)
    result = service.trigger_request(request_id)
    if result is None:
        raise HTTPException(status_code=404, detail="Booking not found")
    return result


@router.get("/bookings/{request_id}/history")
def booking_history(request_id: int, _user: str = Depends(require_auth)):
    return service.get_request_history(request_id)
