"""
API v1 routers.

- auth.py: application registration and API key management
- events.py: event collection and management (API key required)
- analytics.py: cached aggregations (API key required)
"""
from fastapi import APIRouter

from .auth import router as auth_router
from .events import router as events_router
from .analytics import router as analytics_router

# Main v1 router
router = APIRouter()

router.include_router(auth_router, prefix="/auth", tags=["auth"])
router.include_router(events_router, prefix="/events", tags=["events"])
router.include_router(analytics_router, prefix="/analytics", tags=["analytics"])

__all__ = ["router"]
