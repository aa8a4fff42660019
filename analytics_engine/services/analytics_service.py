"""
Analytics Service - cache-aware aggregation.

Results are JSON-ready dicts so a cache hit and a fresh computation return
the same shape. Cached values are served verbatim until their TTL runs out
or a write to the application invalidates the family.
"""
import logging
import math
from datetime import date, datetime
from typing import Any, Callable, Dict, Optional
from uuid import UUID

from analytics_engine.core.cache_keys import StatKind, build_cache_key, current_generation, ttl_for
from analytics_engine.core.errors import ValidationFailed
from analytics_engine.core.monitoring import monitor_performance
from analytics_engine.schemas.analytics import Engagement, TrendInfo
from analytics_engine.services.event_store import EventStore
from analytics_engine.utils.timeutils import ensure_utc, previous_period, utcnow

logger = logging.getLogger(__name__)

CONVERSION_MARKERS = ("conversion", "purchase")


def calculate_trend(current: int, previous: int) -> TrendInfo:
    """
    Percentage change against the previous period.
    A previous period without events reports up/stable instead of dividing by zero.
    """
    if previous == 0:
        if current > 0:
            return TrendInfo(change=100, trend="up")
        return TrendInfo(change=0, trend="stable")

    change = round((current - previous) / previous * 100, 2)
    if change > 0:
        direction = "up"
    elif change < 0:
        direction = "down"
    else:
        direction = "stable"
    return TrendInfo(change=change, trend=direction)


def is_conversion_event(event: str) -> bool:
    name = event.lower()
    return any(marker in name for marker in CONVERSION_MARKERS)


def _check_range(start_date: Optional[date], end_date: Optional[date]):
    if start_date and end_date and start_date > end_date:
        raise ValidationFailed("start_date must not be after end_date")


class AnalyticsService:
    """
    Aggregation engine scoped per request.
    All operations are keyed by app_id for isolation.
    """

    def __init__(self, store: EventStore, cache, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.cache = cache
        self.clock = clock

    def _cached(
        self,
        kind: StatKind,
        app_id: UUID,
        params: Dict[str, Any],
        compute: Callable[[], Dict[str, Any]],
    ) -> Dict[str, Any]:
        # Read before computing: a write landing mid-compute moves readers to a new key
        generation = current_generation(self.cache, app_id)
        cache_key = build_cache_key(app_id, kind, params, generation)

        cached_value = self.cache.get(cache_key)
        if cached_value is not None:
            logger.debug(f"Cache HIT: {cache_key}")
            return cached_value

        logger.debug(f"Cache MISS: {cache_key}")
        result = compute()
        self.cache.set(cache_key, result, ttl_for(kind))
        return result

    # ==================== DERIVED METRICS ====================

    def trend(
        self,
        app_id: UUID,
        event: str,
        start_date: Optional[date],
        end_date: Optional[date],
    ) -> TrendInfo:
        """Compare the range with the period of equal length right before it."""
        if not start_date or not end_date:
            return TrendInfo(change=0, trend="stable")

        previous_start, previous_end = previous_period(start_date, end_date)
        current = self.store.count_events(app_id, event, start_date, end_date)
        previous = self.store.count_events(app_id, event, previous_start, previous_end)
        return calculate_trend(current, previous)

    def conversion_rate(
        self,
        app_id: UUID,
        unique_users: int,
        start_date: Optional[date],
        end_date: Optional[date],
    ) -> float:
        total_users = self.store.count_unique_users(app_id, start_date, end_date)
        if total_users == 0:
            return 0.0
        return round(unique_users / total_users * 100, 2)

    def engagement(self, first_seen: Optional[datetime], last_seen: Optional[datetime], total_events: int) -> Engagement:
        if first_seen is None:
            return Engagement()
        elapsed = self.clock() - ensure_utc(first_seen)
        days_active = max(1, math.floor(elapsed.total_seconds() / 86400))
        return Engagement(
            events_per_day=round(total_events / days_active, 2),
            days_active=days_active,
            last_active=last_seen,
        )

    # ==================== AGGREGATIONS ====================

    @monitor_performance
    def event_summary(
        self,
        app_id: UUID,
        event: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> Dict[str, Any]:
        """
        Count, unique users and device breakdown for one event name,
        with trend and (for conversion/purchase events) conversion rate.
        """
        _check_range(start_date, end_date)

        def compute():
            summary = self.store.summarize_by_event(app_id, event, start_date, end_date)
            summary.trend = self.trend(app_id, event, start_date, end_date)
            if is_conversion_event(event):
                summary.conversion_rate = self.conversion_rate(
                    app_id, summary.unique_users, start_date, end_date
                )
            logger.info(
                f"Event summary generated for app {app_id}: "
                f"event={event} count={summary.count} unique_users={summary.unique_users}"
            )
            return summary.model_dump(mode="json", exclude_none=True)

        return self._cached(
            StatKind.EVENT_SUMMARY,
            app_id,
            {"event": event, "start_date": start_date, "end_date": end_date},
            compute,
        )

    @monitor_performance
    def user_stats(self, app_id: UUID, user_id: str) -> Dict[str, Any]:
        """Per-user behaviour plus engagement metrics."""

        def compute():
            stats = self.store.summarize_by_user(app_id, user_id)
            stats.engagement = self.engagement(stats.first_seen, stats.last_seen, stats.total_events)
            logger.info(f"User stats generated for app {app_id}: total_events={stats.total_events}")
            return stats.model_dump(mode="json")

        return self._cached(StatKind.USER_STATS, app_id, {"user_id": user_id}, compute)

    @monitor_performance
    def app_analytics(
        self,
        app_id: UUID,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> Dict[str, Any]:
        """App-wide totals and breakdowns."""
        _check_range(start_date, end_date)

        def compute():
            analytics = self.store.summarize_by_app(app_id, start_date, end_date)
            logger.info(f"App analytics generated for app {app_id}: total_events={analytics.totals.total_events}")
            return analytics.model_dump(mode="json")

        return self._cached(
            StatKind.APP_ANALYTICS,
            app_id,
            {"start_date": start_date, "end_date": end_date},
            compute,
        )

    @monitor_performance
    def realtime(self, app_id: UUID, window_minutes: int = 60) -> Dict[str, Any]:
        """Trailing-window activity. Never cached."""
        window = self.store.realtime_window(app_id, self.clock(), window_minutes)
        logger.info(f"Real-time analytics generated for app {app_id}: total_events={window.summary.total_events}")
        return window.model_dump(mode="json")
