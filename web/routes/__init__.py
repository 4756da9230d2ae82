from fastapi import APIRouter

from .bookings import router as bookings_router
from .recurring import router as recurring_router
from .settings import router as settings_router

router = APIRouter(prefix="/api")
router.include_router(bookings_router)
router.include_router(recurring_router)
router.include_router(settings_router)
