"""
Cache key families for aggregation results.

Key layout: analytics:<app_id>:<stat kind>:g<generation>:<name=value:...>
Parameters are always rendered in sorted order, so the same logical query
maps to the same key no matter how its parameters were passed.
"""
import logging
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict

from analytics_engine.core.config import settings

logger = logging.getLogger(__name__)

KEY_NAMESPACE = "analytics"


class StatKind(str, Enum):
    """One cache key family per aggregation kind."""

    EVENT_SUMMARY = "event-summary"
    USER_STATS = "user-stats"
    APP_ANALYTICS = "app-analytics"


def ttl_for(kind: StatKind) -> int:
    """TTL in seconds for a stat kind."""
    return {
        StatKind.EVENT_SUMMARY: settings.CACHE_TTL_EVENTS,
        StatKind.USER_STATS: settings.CACHE_TTL_STATS,
        StatKind.APP_ANALYTICS: settings.CACHE_TTL_GENERAL,
    }[kind]


def _render(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)


def family_prefix(app_id: Any, kind: StatKind) -> str:
    """Prefix shared by every key of one application's stat family."""
    return f"{KEY_NAMESPACE}:{app_id}:{kind.value}:"


def generation_key(app_id: Any) -> str:
    """Counter bumped on every write to the application."""
    return f"{KEY_NAMESPACE}:{app_id}:gen"


def current_generation(cache, app_id: Any) -> int:
    """Current write generation of an application; 0 when unset or unreadable."""
    value = cache.get(generation_key(app_id))
    try:
        return int(value) if value is not None else 0
    except (TypeError, ValueError):
        return 0


def build_cache_key(app_id: Any, kind: StatKind, params: Dict[str, Any], generation: int = 0) -> str:
    """
    Build a deterministic cache key.

    Args:
        app_id: Owning application id
        kind: Stat kind (key family)
        params: All query parameters; None renders as empty
        generation: Write generation the result was computed under

    Returns:
        Cache key string
    """
    parts = [f"{name}={_render(params[name])}" for name in sorted(params)]
    return f"{family_prefix(app_id, kind)}g{generation}:" + ":".join(parts)


def invalidate_application(cache, app_id: Any) -> bool:
    """
    Drop every cached aggregation of an application.

    The generation moves first. Results stored under an older generation,
    even after this sweep, are never read again; the family sweep frees them.

    Returns:
        True when the generation moved and all families were swept
    """
    swept = cache.incr(generation_key(app_id)) is not None
    for kind in StatKind:
        if not cache.delete_prefix(family_prefix(app_id, kind)):
            swept = False

    if not swept:
        logger.warning(f"Cache invalidation incomplete for app {app_id}")
    return swept
