"""
Tests for event storage and aggregation queries
"""
from datetime import date, datetime, timedelta, timezone
from unittest.mock import MagicMock
from uuid import uuid4

import pytest
from sqlalchemy.exc import OperationalError

from analytics_engine.core.errors import NotFound, StorageUnavailable
from analytics_engine.schemas.event import EnrichedEvent, EventMetadata
from analytics_engine.services.event_store import EventStore, pick_most_used_device

BASE_TIME = datetime(2024, 3, 10, 14, 30, tzinfo=timezone.utc)


def enriched(event="page_view", device="desktop", user_id=None, session_id=None,
             timestamp=BASE_TIME, **metadata):
    return EnrichedEvent(
        event=event,
        url="https://example.com/",
        device=device,
        user_id=user_id,
        session_id=session_id,
        ip_address="203.0.113.7",
        metadata=EventMetadata(**metadata),
        timestamp=timestamp,
    )


@pytest.fixture
def store(db_session):
    return EventStore(db_session)


@pytest.fixture
def app_id(registered_app):
    return registered_app[1].id


def test_event_summary_scenario(store, app_id):
    """5 page views: 3 desktop, 2 mobile, 2 distinct users"""
    for device, user in [
        ("desktop", "u1"), ("desktop", "u1"), ("desktop", "u2"),
        ("mobile", "u2"), ("mobile", None),
    ]:
        store.append(app_id, enriched(device=device, user_id=user))

    summary = store.summarize_by_event(app_id, "page_view")

    assert summary.count == 5
    assert summary.unique_users == 2
    assert summary.device_breakdown.model_dump() == {"desktop": 3, "mobile": 2, "tablet": 0}
    assert summary.timeframe.start_date == "all_time"


def test_anonymous_events_never_count_as_users(store, app_id):
    for _ in range(3):
        store.append(app_id, enriched(user_id=None))
    store.append(app_id, enriched(user_id="u1"))
    store.append(app_id, enriched(user_id="u1"))

    assert store.summarize_by_event(app_id, "page_view").unique_users == 1
    assert store.count_unique_users(app_id) == 1


def test_summary_is_scoped_by_application(store, app_id):
    store.append(app_id, enriched())
    store.append(uuid4(), enriched())

    assert store.summarize_by_event(app_id, "page_view").count == 1


def test_date_range_is_inclusive_of_end_day(store, app_id):
    store.append(app_id, enriched(timestamp=datetime(2024, 3, 1, 0, 0, tzinfo=timezone.utc)))
    store.append(app_id, enriched(timestamp=datetime(2024, 3, 5, 23, 59, tzinfo=timezone.utc)))
    store.append(app_id, enriched(timestamp=datetime(2024, 3, 6, 0, 0, tzinfo=timezone.utc)))

    assert store.count_events(app_id, "page_view", date(2024, 3, 1), date(2024, 3, 5)) == 2
    assert store.count_events(app_id, "page_view") == 3


def test_user_stats(store, app_id):
    store.append(app_id, enriched(user_id="u1", session_id="s1", device="mobile",
                                  timestamp=BASE_TIME, browser="Safari"))
    store.append(app_id, enriched(event="signup", user_id="u1", session_id="s1", device="mobile",
                                  timestamp=BASE_TIME + timedelta(minutes=5), browser="Safari"))
    store.append(app_id, enriched(user_id="u1", session_id="s2", device="desktop",
                                  timestamp=BASE_TIME + timedelta(days=1), browser="Chrome"))
    store.append(app_id, enriched(user_id="u2"))

    stats = store.summarize_by_user(app_id, "u1")

    assert stats.total_events == 3
    assert stats.unique_events == ["page_view", "signup"]
    assert stats.unique_event_count == 2
    assert stats.session_count == 2
    assert stats.most_used_device == "mobile"
    assert stats.first_seen == BASE_TIME
    assert stats.last_seen == BASE_TIME + timedelta(days=1)
    assert stats.device_details["browser"] == "Chrome"
    assert [e.event for e in stats.recent_events][0] == "page_view"
    assert len(stats.recent_events) == 3


def test_user_stats_unknown_user(store, app_id):
    stats = store.summarize_by_user(app_id, "ghost")
    assert stats.total_events == 0
    assert stats.most_used_device is None
    assert stats.recent_events == []


def test_app_analytics(store, app_id):
    store.append(app_id, enriched(user_id="u1", session_id="s1", country="DE", city="Berlin"))
    store.append(app_id, enriched(user_id="u2", session_id="s2", country="DE", city="Munich",
                                  device="mobile"))
    store.append(app_id, enriched(event="click", user_id="u1", session_id="s1", country="FR",
                                  timestamp=BASE_TIME.replace(hour=9)))

    analytics = store.summarize_by_app(app_id)

    assert analytics.totals.model_dump() == {
        "total_events": 3, "unique_users": 2, "unique_sessions": 2, "page_views": 2,
    }
    assert [(e.event, e.count) for e in analytics.events] == [("page_view", 2), ("click", 1)]
    assert [(d.device, d.count) for d in analytics.devices] == [("desktop", 2), ("mobile", 1)]
    assert analytics.geography[0].country == "DE"
    assert analytics.geography[0].cities == ["Berlin", "Munich"]
    assert len(analytics.hourly_distribution) == 24
    hours = {h.hour: h.count for h in analytics.hourly_distribution}
    assert hours[14] == 2
    assert hours[9] == 1
    assert len(analytics.recent_activity) == 3


def test_realtime_window_buckets_by_minute(store, app_id):
    now = BASE_TIME
    store.append(app_id, enriched(user_id="u1", timestamp=now - timedelta(minutes=2, seconds=10)))
    store.append(app_id, enriched(user_id="u1", timestamp=now - timedelta(minutes=2, seconds=40)))
    store.append(app_id, enriched(event="click", user_id="u2", timestamp=now - timedelta(minutes=1)))
    store.append(app_id, enriched(timestamp=now - timedelta(hours=2)))

    window = store.realtime_window(app_id, now, window_minutes=60)

    assert window.timeframe == "last_hour"
    assert len(window.data) == 2
    assert window.data[0].total_events == 2
    assert window.data[0].unique_users == 1
    assert window.summary.total_events == 3
    assert window.summary.unique_users == 2


def test_realtime_window_holds_at_most_one_bucket_per_minute(store, app_id):
    now = BASE_TIME
    # 61 events one minute apart, the last one at now
    for minutes_ago in range(61):
        store.append(app_id, enriched(timestamp=now - timedelta(minutes=minutes_ago)))

    window = store.realtime_window(app_id, now, window_minutes=60)

    assert len(window.data) == 60
    assert window.summary.total_events == 60
    assert window.start_time == now - timedelta(minutes=59)
    assert window.data[-1].minute.replace(tzinfo=timezone.utc) == now


def test_realtime_window_starts_on_a_whole_minute(store, app_id):
    now = BASE_TIME + timedelta(seconds=45)
    store.append(app_id, enriched(timestamp=BASE_TIME - timedelta(minutes=59, seconds=30)))
    store.append(app_id, enriched(timestamp=BASE_TIME - timedelta(minutes=59)))
    store.append(app_id, enriched(timestamp=now))

    window = store.realtime_window(app_id, now, window_minutes=60)

    assert window.start_time == BASE_TIME - timedelta(minutes=59)
    assert len(window.data) == 2
    assert window.summary.total_events == 2


def test_list_events_paginates(store, app_id):
    for minute in range(5):
        store.append(app_id, enriched(timestamp=BASE_TIME + timedelta(minutes=minute)))

    rows, total = store.list_events(app_id, page=2, limit=2)

    assert total == 5
    assert len(rows) == 2
    assert rows[0].timestamp.replace(tzinfo=timezone.utc) == BASE_TIME + timedelta(minutes=2)


def test_get_and_delete_event(store, app_id):
    row = store.append(app_id, enriched())

    assert store.get_event(app_id, row.id).id == row.id
    with pytest.raises(NotFound):
        store.get_event(uuid4(), row.id)

    store.delete_event(app_id, row.id)

    with pytest.raises(NotFound):
        store.get_event(app_id, row.id)


def test_append_many_is_one_batch(store, app_id):
    rows = store.append_many(app_id, [enriched(user_id=f"u{i}") for i in range(3)])
    assert len({row.id for row in rows}) == 3
    assert store.count_events(app_id, "page_view") == 3


@pytest.mark.parametrize(
    "counts,expected",
    [
        ({"desktop": 2, "mobile": 2}, "mobile"),
        ({"desktop": 2, "tablet": 2}, "desktop"),
        ({"tablet": 3, "mobile": 1}, "tablet"),
        ({}, None),
    ],
)
def test_most_used_device_tie_break(counts, expected):
    assert pick_most_used_device(counts) == expected


def failing_commit(db_session, monkeypatch):
    """Make the session's commit fail the way a lost database connection does"""
    error = OperationalError("INSERT INTO events", {}, Exception("disk I/O error"))
    monkeypatch.setattr(db_session, "commit", MagicMock(side_effect=error))
    rollback = MagicMock(wraps=db_session.rollback)
    monkeypatch.setattr(db_session, "rollback", rollback)
    return rollback


def test_append_failure_is_storage_unavailable(db_session, store, app_id, monkeypatch):
    rollback = failing_commit(db_session, monkeypatch)

    with pytest.raises(StorageUnavailable):
        store.append(app_id, enriched())

    rollback.assert_called_once()


def test_append_many_failure_is_storage_unavailable(db_session, store, app_id, monkeypatch):
    rollback = failing_commit(db_session, monkeypatch)

    with pytest.raises(StorageUnavailable):
        store.append_many(app_id, [enriched(), enriched(event="click")])

    rollback.assert_called_once()
    monkeypatch.undo()
    assert store.list_events(app_id)[1] == 0
