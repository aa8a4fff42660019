"""
Analytics endpoints - cached aggregations, authenticated by API key.
"""
import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query

from analytics_engine.core.dependencies import get_analytics_service, get_application
from analytics_engine.models.application import Application
from analytics_engine.schemas.response import api_response
from analytics_engine.services.analytics_service import AnalyticsService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/event-summary")
def get_event_summary(
    event: str = Query(..., min_length=1, max_length=100, description="Event name"),
    start_date: Optional[date] = Query(None, description="YYYY-MM-DD, inclusive"),
    end_date: Optional[date] = Query(None, description="YYYY-MM-DD, inclusive"),
    application: Application = Depends(get_application),
    service: AnalyticsService = Depends(get_analytics_service),
):
    """
    Get event summary analytics.

    Returns:
        - count, unique_users, device_breakdown
        - trend against the previous period of the same length
        - conversion_rate for conversion/purchase events
    """
    summary = service.event_summary(application.id, event, start_date, end_date)
    return api_response("Event summary retrieved successfully", summary)


@router.get("/user-stats")
def get_user_stats(
    user_id: str = Query(..., min_length=1, max_length=200),
    application: Application = Depends(get_application),
    service: AnalyticsService = Depends(get_analytics_service),
):
    """Behaviour of one user of the application."""
    stats = service.user_stats(application.id, user_id)
    return api_response("User stats retrieved successfully", stats)


@router.get("/app")
def get_app_analytics(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    application: Application = Depends(get_application),
    service: AnalyticsService = Depends(get_analytics_service),
):
    """App-wide totals, event/device/country breakdowns, hourly distribution, recent activity."""
    analytics = service.app_analytics(application.id, start_date, end_date)
    return api_response("App analytics retrieved successfully", analytics)


@router.get("/realtime")
def get_realtime_analytics(
    window_minutes: int = Query(60, ge=1, le=1440),
    application: Application = Depends(get_application),
    service: AnalyticsService = Depends(get_analytics_service),
):
    """Per-minute activity over the trailing window (default: last hour)."""
    window = service.realtime(application.id, window_minutes)
    return api_response("Real-time analytics retrieved successfully", window)
