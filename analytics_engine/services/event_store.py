"""
Event Store - durable, append-only event collection and its aggregations.

Every aggregation is one or more typed SQLAlchemy queries scoped by app_id.
Storage errors surface as StorageUnavailable; there is no business
validation at this layer.
"""
import logging
from collections import defaultdict
from contextlib import contextmanager
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import and_, case, distinct, extract, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from analytics_engine.core.errors import NotFound, StorageUnavailable
from analytics_engine.models.event import DEVICE_TYPES, Event
from analytics_engine.schemas.analytics import (
    AppAnalytics,
    AppTotals,
    CountryCount,
    DeviceBreakdown,
    DeviceCount,
    EventCount,
    EventSummary,
    HourCount,
    MinuteBucket,
    RealtimeSummary,
    RealtimeWindow,
    RecentEvent,
    Timeframe,
    UserStats,
)
from analytics_engine.schemas.event import EnrichedEvent
from analytics_engine.utils.timeutils import day_range, ensure_utc

logger = logging.getLogger(__name__)

USER_RECENT_EVENTS = 10
APP_RECENT_EVENTS = 20
DEVICE_DETAIL_FIELDS = ("browser", "os", "screen_size", "country", "city", "language")
SORTABLE_FIELDS = {
    "timestamp": Event.timestamp,
    "event": Event.event,
    "device": Event.device,
    "url": Event.url,
}


def timeframe(start_date: Optional[date], end_date: Optional[date]) -> Timeframe:
    return Timeframe(
        start_date=start_date.isoformat() if start_date else "all_time",
        end_date=end_date.isoformat() if end_date else "all_time",
    )


def pick_most_used_device(counts: Dict[str, int]) -> Optional[str]:
    """
    Device with the highest count.
    Ties go to the earlier device in the order mobile, desktop, tablet.
    """
    ranked = [d for d in DEVICE_TYPES if counts.get(d)]
    if not ranked:
        return None
    return min(ranked, key=lambda d: (-counts[d], DEVICE_TYPES.index(d)))


def _recent(event: Event) -> RecentEvent:
    return RecentEvent(
        event=event.event,
        url=event.url,
        device=event.device,
        user_id=event.user_id,
        timestamp=ensure_utc(event.timestamp),
        metadata=event.event_metadata or {},
    )


class EventStore:
    """Append and query events of any application through one session."""

    def __init__(self, db: Session):
        self.db = db

    @contextmanager
    def _guard(self, operation: str, app_id=None):
        try:
            yield
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Event store {operation} failed for app {app_id}: {e}")
            raise StorageUnavailable()

    @staticmethod
    def _filters(
        app_id: UUID,
        event: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list:
        filters = [Event.app_id == app_id]
        if event is not None:
            filters.append(Event.event == event)
        if start is not None:
            filters.append(Event.timestamp >= start)
        if end is not None:
            filters.append(Event.timestamp <= end)
        return filters

    @staticmethod
    def _to_row(app_id: UUID, enriched: EnrichedEvent) -> Event:
        return Event(
            app_id=app_id,
            event=enriched.event,
            user_id=enriched.user_id,
            session_id=enriched.session_id,
            url=enriched.url,
            referrer=enriched.referrer,
            device=enriched.device,
            ip_address=enriched.ip_address,
            user_agent=enriched.user_agent,
            event_metadata=enriched.metadata.model_dump(),
            timestamp=enriched.timestamp,
        )

    # ==================== WRITES ====================

    def append(self, app_id: UUID, enriched: EnrichedEvent) -> Event:
        """
        Store one enriched event.

        Raises:
            StorageUnavailable: the database rejected or could not take the write
        """
        row = self._to_row(app_id, enriched)
        with self._guard("append", app_id):
            self.db.add(row)
            self.db.commit()
            self.db.refresh(row)
        return row

    def append_many(self, app_id: UUID, events: List[EnrichedEvent]) -> List[Event]:
        """Store a batch in one transaction; all or nothing."""
        rows = [self._to_row(app_id, enriched) for enriched in events]
        with self._guard("append_many", app_id):
            self.db.add_all(rows)
            self.db.commit()
            for row in rows:
                self.db.refresh(row)
        return rows

    def delete_event(self, app_id: UUID, event_id: UUID) -> None:
        """Administrative removal of a single event."""
        row = self.get_event(app_id, event_id)
        with self._guard("delete", app_id):
            self.db.delete(row)
            self.db.commit()

    # ==================== LOOKUPS ====================

    def get_event(self, app_id: UUID, event_id: UUID) -> Event:
        with self._guard("get_event", app_id):
            row = self.db.query(Event).filter(Event.app_id == app_id, Event.id == event_id).first()
        if not row:
            raise NotFound("Event not found")
        return row

    def list_events(
        self,
        app_id: UUID,
        page: int = 1,
        limit: int = 50,
        sort_by: str = "timestamp",
        sort_order: str = "desc",
        event: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> Tuple[List[Event], int]:
        """
        Page through an application's events.

        Returns:
            (events on the page, total matching events)
        """
        start, end = day_range(start_date, end_date)
        filters = self._filters(app_id, event, start, end)
        column = SORTABLE_FIELDS.get(sort_by, Event.timestamp)
        ordering = column.asc() if sort_order == "asc" else column.desc()

        with self._guard("list_events", app_id):
            total = self.db.query(func.count(Event.id)).filter(*filters).scalar() or 0
            rows = self.db.query(Event).filter(*filters).order_by(
                ordering, Event.id
            ).offset((page - 1) * limit).limit(limit).all()
        return rows, total

    def count_events(
        self,
        app_id: UUID,
        event: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> int:
        start, end = day_range(start_date, end_date)
        with self._guard("count_events", app_id):
            return self.db.query(func.count(Event.id)).filter(
                *self._filters(app_id, event, start, end)
            ).scalar() or 0

    def count_unique_users(
        self,
        app_id: UUID,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> int:
        """Distinct non-null user ids across all events of the application."""
        start, end = day_range(start_date, end_date)
        with self._guard("count_unique_users", app_id):
            return self.db.query(func.count(distinct(Event.user_id))).filter(
                *self._filters(app_id, None, start, end)
            ).scalar() or 0

    # ==================== AGGREGATIONS ====================

    def summarize_by_event(
        self,
        app_id: UUID,
        event: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> EventSummary:
        """
        Count, unique users and device breakdown for one event name.
        COUNT(DISTINCT user_id) skips NULL, so anonymous events never add a user.
        """
        start, end = day_range(start_date, end_date)
        filters = self._filters(app_id, event, start, end)

        with self._guard("summarize_by_event", app_id):
            count, unique_users = self.db.query(
                func.count(Event.id),
                func.count(distinct(Event.user_id)),
            ).filter(*filters).one()
            devices = self.db.query(
                Event.device, func.count(Event.id)
            ).filter(*filters).group_by(Event.device).all()

        breakdown = {device: total for device, total in devices if device in DEVICE_TYPES}
        return EventSummary(
            event=event,
            count=count or 0,
            unique_users=unique_users or 0,
            device_breakdown=DeviceBreakdown(**breakdown),
            timeframe=timeframe(start_date, end_date),
        )

    def summarize_by_user(self, app_id: UUID, user_id: str) -> UserStats:
        """Behaviour of one user id within an application."""
        filters = [Event.app_id == app_id, Event.user_id == user_id]

        with self._guard("summarize_by_user", app_id):
            total, first_seen, last_seen, sessions = self.db.query(
                func.count(Event.id),
                func.min(Event.timestamp),
                func.max(Event.timestamp),
                func.count(distinct(Event.session_id)),
            ).filter(*filters).one()

            if not total:
                return UserStats(user_id=user_id)

            event_names = [
                name for (name,) in self.db.query(distinct(Event.event)).filter(*filters).order_by(Event.event)
            ]
            device_counts = dict(
                self.db.query(Event.device, func.count(Event.id)).filter(*filters).group_by(Event.device).all()
            )
            recent = self.db.query(Event).filter(*filters).order_by(
                Event.timestamp.desc(), Event.created_at.desc()
            ).limit(USER_RECENT_EVENTS).all()

        latest_metadata = recent[0].event_metadata or {}
        return UserStats(
            user_id=user_id,
            total_events=total,
            unique_event_count=len(event_names),
            unique_events=event_names,
            device_details={field: latest_metadata.get(field) for field in DEVICE_DETAIL_FIELDS},
            first_seen=ensure_utc(first_seen),
            last_seen=ensure_utc(last_seen),
            session_count=sessions or 0,
            most_used_device=pick_most_used_device(device_counts),
            recent_events=[_recent(row) for row in recent],
        )

    def summarize_by_app(
        self,
        app_id: UUID,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> AppAnalytics:
        """Totals plus event, device, country and hourly breakdowns."""
        start, end = day_range(start_date, end_date)
        filters = self._filters(app_id, None, start, end)
        country = Event.event_metadata["country"].as_string()
        city = Event.event_metadata["city"].as_string()
        hour = extract("hour", Event.timestamp)

        with self._guard("summarize_by_app", app_id):
            total, users, sessions, page_views = self.db.query(
                func.count(Event.id),
                func.count(distinct(Event.user_id)),
                func.count(distinct(Event.session_id)),
                func.coalesce(func.sum(case((Event.event == "page_view", 1), else_=0)), 0),
            ).filter(*filters).one()

            per_event = self.db.query(
                Event.event,
                func.count(Event.id).label("count"),
                func.count(distinct(Event.user_id)),
            ).filter(*filters).group_by(Event.event).order_by(
                func.count(Event.id).desc(), Event.event
            ).all()

            per_device = self.db.query(
                Event.device, func.count(Event.id)
            ).filter(*filters).group_by(Event.device).order_by(
                func.count(Event.id).desc(), Event.device
            ).all()

            per_place = self.db.query(
                country, city, func.count(Event.id)
            ).filter(*filters).group_by(country, city).all()

            per_hour = self.db.query(
                hour, func.count(Event.id)
            ).filter(*filters).group_by(hour).all()

            recent = self.db.query(Event).filter(*filters).order_by(
                Event.timestamp.desc(), Event.created_at.desc()
            ).limit(APP_RECENT_EVENTS).all()

        countries: Dict[Optional[str], int] = defaultdict(int)
        cities: Dict[Optional[str], set] = defaultdict(set)
        for country_name, city_name, count in per_place:
            countries[country_name] += count
            if city_name:
                cities[country_name].add(city_name)
        geography = sorted(
            (
                CountryCount(country=name, count=count, cities=sorted(cities[name]))
                for name, count in countries.items()
            ),
            key=lambda c: (-c.count, c.country is None, c.country or ""),
        )

        hours = {int(h): count for h, count in per_hour if h is not None}
        return AppAnalytics(
            timeframe=timeframe(start_date, end_date),
            totals=AppTotals(
                total_events=total or 0,
                unique_users=users or 0,
                unique_sessions=sessions or 0,
                page_views=int(page_views or 0),
            ),
            events=[EventCount(event=name, count=count, unique_users=u) for name, count, u in per_event],
            devices=[DeviceCount(device=device, count=count) for device, count in per_device],
            geography=geography,
            hourly_distribution=[HourCount(hour=h, count=hours.get(h, 0)) for h in range(24)],
            recent_activity=[_recent(row) for row in recent],
        )

    def realtime_window(self, app_id: UUID, now: datetime, window_minutes: int = 60) -> RealtimeWindow:
        """
        Per-minute activity over the trailing window, oldest minute first.
        The window is short, so rows are bucketed in Python.

        The window starts at a whole minute and ends at now (the current,
        partial minute included), so it spans at most window_minutes buckets.
        """
        start = now.replace(second=0, microsecond=0) - timedelta(minutes=window_minutes - 1)
        with self._guard("realtime_window", app_id):
            rows = self.db.query(Event.timestamp, Event.event, Event.user_id).filter(
                and_(Event.app_id == app_id, Event.timestamp >= start, Event.timestamp <= now)
            ).all()

        buckets: Dict[datetime, Dict[str, list]] = defaultdict(lambda: defaultdict(list))
        for ts, name, user_id in rows:
            minute = ensure_utc(ts).replace(second=0, microsecond=0)
            buckets[minute][name].append(user_id)

        data = []
        window_users = set()
        for minute in sorted(buckets):
            per_event = buckets[minute]
            minute_users = set()
            counts = []
            for name, users in per_event.items():
                named_users = {u for u in users if u is not None}
                minute_users |= named_users
                counts.append(EventCount(event=name, count=len(users), unique_users=len(named_users)))
            counts.sort(key=lambda c: (-c.count, c.event))
            window_users |= minute_users
            data.append(MinuteBucket(
                minute=minute,
                events=counts,
                total_events=sum(c.count for c in counts),
                unique_users=len(minute_users),
            ))

        return RealtimeWindow(
            timeframe="last_hour" if window_minutes == 60 else f"last_{window_minutes}_minutes",
            window_minutes=window_minutes,
            start_time=start,
            end_time=now,
            data=data,
            summary=RealtimeSummary(
                total_events=sum(bucket.total_events for bucket in data),
                unique_users=len(window_users),
            ),
        )
