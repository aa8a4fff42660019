"""
Monitoring utilities for aggregation timings and error tracking
"""
from typing import Dict, Any, Optional
import logging
import time
from functools import wraps

from analytics_engine.utils.timeutils import utcnow

logger = logging.getLogger(__name__)

# Aggregations slower than this are logged at WARNING
SLOW_AGGREGATION_SECONDS = 2.0


def track_error(
    error_type: str,
    app_id: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None
):
    """
    Record a failed operation.

    Args:
        error_type: "<operation>.error"
        app_id: Application the operation ran for
        metadata: Additional metadata
    """
    logger.error(
        f"Error tracked: {error_type} app={app_id} "
        f"at={utcnow().isoformat()} metadata={metadata or {}}"
    )


def track_metric(
    metric_name: str,
    value: float,
    app_id: Optional[str] = None,
    tags: Optional[Dict[str, str]] = None
):
    """Record a timing or counter; slow aggregations are raised to WARNING."""
    level = logging.DEBUG
    if metric_name.endswith(".duration") and value >= SLOW_AGGREGATION_SECONDS:
        level = logging.WARNING
    logger.log(level, f"Metric: {metric_name}={value:.4f} app={app_id} tags={tags or {}}")


def _app_id_of(args, kwargs) -> Optional[str]:
    app_id = kwargs.get("app_id")
    if app_id is None and len(args) > 1:
        app_id = args[1]  # (self, app_id, ...) on service methods
    return str(app_id) if app_id is not None else None


def monitor_performance(func):
    """
    Time a service method and track failures against its application.

    Usage:
        @monitor_performance
        def event_summary(self, app_id, ...):
            ...
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        app_id = _app_id_of(args, kwargs)
        status = "success"
        start_time = time.perf_counter()
        try:
            return func(*args, **kwargs)
        except Exception as e:
            status = "error"
            track_error(f"{func.__name__}.error", app_id=app_id, metadata={"error": str(e)})
            raise
        finally:
            track_metric(
                f"{func.__name__}.duration",
                time.perf_counter() - start_time,
                app_id=app_id,
                tags={"status": status},
            )

    return wrapper
