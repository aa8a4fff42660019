"""
Tests for cache-aware aggregation and invalidation
"""
from datetime import date, datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
import redis
from sqlalchemy.exc import OperationalError

from analytics_engine.core.cache_keys import (
    StatKind,
    build_cache_key,
    current_generation,
    generation_key,
    invalidate_application,
)
from analytics_engine.core.errors import StorageUnavailable, ValidationFailed
from analytics_engine.core.redis import RedisCache
from analytics_engine.schemas.event import EventCreate
from analytics_engine.services.analytics_service import (
    AnalyticsService,
    calculate_trend,
    is_conversion_event,
)
from analytics_engine.services.enrichment import AgentInfo
from analytics_engine.services.event_store import EventStore
from analytics_engine.services.ingestion_service import IngestionService, RequestContext

NOW = datetime(2024, 3, 10, 12, 0, tzinfo=timezone.utc)


def desktop_parser(user_agent):
    return AgentInfo(device="desktop")


@pytest.fixture
def store(db_session):
    return EventStore(db_session)


@pytest.fixture
def application(registered_app):
    return registered_app[1]


def make_ingestion(store, cache):
    return IngestionService(store, cache, agent_parser=desktop_parser, clock=lambda: NOW)


def collect(service, application, **fields):
    payload = {"event": "page_view", "url": "https://example.com/"}
    payload.update(fields)
    return service.collect(application, EventCreate(**payload), RequestContext(ip_address="203.0.113.7"))


def failing_redis_cache():
    """RedisCache whose client raises on every call"""
    cache = RedisCache("redis://localhost:6379")
    client = MagicMock()
    error = redis.ConnectionError("connection refused")
    client.get.side_effect = error
    client.setex.side_effect = error
    client.delete.side_effect = error
    client.scan_iter.side_effect = error
    client.ping.side_effect = error
    client.incr.side_effect = error
    cache._client = client
    cache._connected = True
    return cache


@pytest.mark.parametrize(
    "current,previous,expected",
    [
        (0, 0, (0, "stable")),
        (5, 0, (100, "up")),
        (15, 10, (50.0, "up")),
        (5, 10, (-50.0, "down")),
        (10, 10, (0.0, "stable")),
        (1, 3, (-66.67, "down")),
    ],
)
def test_calculate_trend(current, previous, expected):
    trend = calculate_trend(current, previous)
    assert (trend.change, trend.trend) == expected


def test_conversion_event_names():
    assert is_conversion_event("purchase_completed")
    assert is_conversion_event("Checkout_Conversion")
    assert not is_conversion_event("page_view")


def test_cache_miss_then_hit(store, cache, application):
    ingestion = make_ingestion(store, cache)
    collect(ingestion, application, user_id="u1")
    service = AnalyticsService(store, cache, clock=lambda: NOW)

    first = service.event_summary(application.id, "page_view")
    key = build_cache_key(application.id, StatKind.EVENT_SUMMARY,
                          {"event": "page_view", "start_date": None, "end_date": None},
                          current_generation(cache, application.id))

    assert key in cache.store
    assert cache.ttls[key] == 300

    # A hit is returned as stored
    cache.set(key, {**first, "count": 999}, 300)
    assert service.event_summary(application.id, "page_view")["count"] == 999


def test_write_invalidates_cached_aggregations(store, cache, application):
    ingestion = make_ingestion(store, cache)
    service = AnalyticsService(store, cache, clock=lambda: NOW)
    collect(ingestion, application, user_id="u1")

    assert service.event_summary(application.id, "page_view")["count"] == 1
    assert service.app_analytics(application.id)["totals"]["total_events"] == 1
    assert service.user_stats(application.id, "u1")["total_events"] == 1

    collect(ingestion, application, user_id="u1")

    assert service.event_summary(application.id, "page_view")["count"] == 2
    assert service.app_analytics(application.id)["totals"]["total_events"] == 2
    assert service.user_stats(application.id, "u1")["total_events"] == 2


def test_invalidation_leaves_other_applications_cached(store, cache, application):
    other_key = build_cache_key("other-app", StatKind.APP_ANALYTICS, {})
    cache.set(other_key, {"totals": {}}, 600)

    collect(make_ingestion(store, cache), application)

    assert other_key in cache.store


def test_ttl_per_stat_kind(store, cache, application):
    service = AnalyticsService(store, cache, clock=lambda: NOW)
    service.user_stats(application.id, "u1")
    service.app_analytics(application.id)

    ttls = sorted(cache.ttls.values())
    assert ttls == [120, 600]


def test_trend_compares_with_previous_period(store, cache, application):
    ingestion = make_ingestion(store, cache)
    # Current period 2024-03-08..2024-03-09, previous 2024-03-06..2024-03-07
    for ts in ["2024-03-06T10:00:00Z", "2024-03-08T10:00:00Z", "2024-03-09T10:00:00Z"]:
        collect(ingestion, application, timestamp=ts)
    service = AnalyticsService(store, cache, clock=lambda: NOW)

    summary = service.event_summary(application.id, "page_view", date(2024, 3, 8), date(2024, 3, 9))

    assert summary["count"] == 2
    assert summary["trend"] == {"change": 100.0, "trend": "up"}
    assert summary["timeframe"] == {"start_date": "2024-03-08", "end_date": "2024-03-09"}
    assert "conversion_rate" not in summary


def test_trend_without_range_is_stable(store, cache, application):
    collect(make_ingestion(store, cache), application)
    summary = AnalyticsService(store, cache).event_summary(application.id, "page_view")
    assert summary["trend"] == {"change": 0, "trend": "stable"}


def test_conversion_rate(store, cache, application):
    ingestion = make_ingestion(store, cache)
    for user in ["u1", "u2", "u3", "u4"]:
        collect(ingestion, application, user_id=user)
    collect(ingestion, application, event="purchase", user_id="u1")

    summary = AnalyticsService(store, cache).event_summary(application.id, "purchase")

    assert summary["conversion_rate"] == 25.0


def test_inverted_range_is_rejected(store, cache, application):
    service = AnalyticsService(store, cache)
    with pytest.raises(ValidationFailed):
        service.event_summary(application.id, "page_view", date(2024, 3, 9), date(2024, 3, 1))


def test_user_engagement(store, cache, application):
    ingestion = make_ingestion(store, cache)
    collect(ingestion, application, user_id="u1", timestamp="2024-03-06T12:00:00Z")
    collect(ingestion, application, user_id="u1", timestamp="2024-03-09T12:00:00Z")
    service = AnalyticsService(store, cache, clock=lambda: NOW)

    engagement = service.user_stats(application.id, "u1")["engagement"]

    assert engagement["days_active"] == 4
    assert engagement["events_per_day"] == 0.5


def test_realtime_is_not_cached(store, cache, application):
    ingestion = make_ingestion(store, cache)
    collect(ingestion, application, user_id="u1", timestamp=(NOW - timedelta(minutes=3)).isoformat())
    service = AnalyticsService(store, cache, clock=lambda: NOW)

    window = service.realtime(application.id)

    assert window["summary"] == {"total_events": 1, "unique_users": 1}
    assert all(key == generation_key(application.id) for key in cache.store)


def test_failing_cache_never_fails_ingestion_or_aggregation(store, application):
    cache = failing_redis_cache()
    ingestion = make_ingestion(store, cache)

    row = collect(ingestion, application, user_id="u1")
    summary = AnalyticsService(store, cache).event_summary(application.id, "page_view")

    assert row.id is not None
    assert summary["count"] == 1
    assert invalidate_application(cache, application.id) is False
    assert cache.ping() is False


def test_write_during_computation_is_not_masked_by_stale_result(store, cache, application, monkeypatch):
    ingestion = make_ingestion(store, cache)
    service = AnalyticsService(store, cache, clock=lambda: NOW)
    collect(ingestion, application, user_id="u1")

    original = store.summarize_by_event

    def summarize_then_write(*args, **kwargs):
        summary = original(*args, **kwargs)
        # A concurrent collect lands after the read but before the result is stored
        collect(ingestion, application, user_id="u2")
        return summary

    monkeypatch.setattr(store, "summarize_by_event", summarize_then_write)
    assert service.event_summary(application.id, "page_view")["count"] == 1
    monkeypatch.undo()

    assert service.event_summary(application.id, "page_view")["count"] == 2


def test_stale_write_under_old_generation_is_unreachable(cache):
    old_key = build_cache_key("app-1", StatKind.USER_STATS, {"user_id": "u1"},
                              current_generation(cache, "app-1"))

    invalidate_application(cache, "app-1")
    cache.set(old_key, {"total_events": 1}, 120)

    new_key = build_cache_key("app-1", StatKind.USER_STATS, {"user_id": "u1"},
                              current_generation(cache, "app-1"))
    assert new_key != old_key
    assert cache.get(new_key) is None


def broken_commit(store, monkeypatch):
    error = OperationalError("INSERT INTO events", {}, Exception("database is locked"))
    monkeypatch.setattr(store.db, "commit", MagicMock(side_effect=error))
    rollback = MagicMock(wraps=store.db.rollback)
    monkeypatch.setattr(store.db, "rollback", rollback)
    return rollback


def test_failed_append_skips_invalidation(store, application, monkeypatch):
    cache = MagicMock()
    ingestion = make_ingestion(store, cache)
    rollback = broken_commit(store, monkeypatch)

    with pytest.raises(StorageUnavailable):
        collect(ingestion, application)

    rollback.assert_called_once()
    cache.incr.assert_not_called()
    cache.delete_prefix.assert_not_called()


def test_failed_batch_append_skips_invalidation(store, application, monkeypatch):
    cache = MagicMock()
    ingestion = make_ingestion(store, cache)
    rollback = broken_commit(store, monkeypatch)
    raws = [EventCreate(event=name, url="https://example.com/") for name in ("page_view", "click")]

    with pytest.raises(StorageUnavailable):
        ingestion.collect_batch(application, raws, RequestContext(ip_address="203.0.113.7"))

    rollback.assert_called_once()
    cache.incr.assert_not_called()
    cache.delete_prefix.assert_not_called()
