"""
Health check utilities
"""
from typing import Dict, Any, Optional
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from analytics_engine.core.database import SessionLocal
from analytics_engine.core.config import settings
import logging

logger = logging.getLogger(__name__)


def check_database() -> Dict[str, Any]:
    """
    Check database connectivity.

    Returns:
        Dictionary with status and details
    """
    try:
        db = SessionLocal()
        try:
            # Simple query to check connection
            db.execute(text("SELECT 1"))
            return {
                "status": "healthy",
                "message": "Database connection successful"
            }
        finally:
            db.close()
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")
        return {
            "status": "unhealthy",
            "message": "Database connection failed"
        }


def check_cache(cache) -> Dict[str, Any]:
    """
    Check Redis connectivity through the shared cache handle.
    An unreachable cache only degrades performance.
    """
    if cache is not None and cache.ping():
        return {
            "status": "healthy",
            "message": "Redis connection successful"
        }
    return {
        "status": "degraded",
        "message": "Redis unavailable, serving uncached aggregations"
    }


def get_health_status(cache: Optional[Any] = None) -> Dict[str, Any]:
    """
    Get overall health status.

    Only the event store decides overall health; the cache is optional.
    """
    db_status = check_database()
    cache_status = check_cache(cache)

    overall_status = "healthy"
    if db_status["status"] != "healthy":
        overall_status = "unhealthy"

    return {
        "status": overall_status,
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "components": {
            "database": db_status,
            "redis": cache_status,
        }
    }
