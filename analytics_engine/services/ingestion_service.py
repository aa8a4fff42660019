"""
Ingestion Service - write path: enrich, append, invalidate.

The append must succeed for the request to succeed; the cache sweep after it
is best effort and never fails ingestion.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional

from analytics_engine.core.cache_keys import invalidate_application
from analytics_engine.models.application import Application
from analytics_engine.models.event import Event
from analytics_engine.schemas.event import EventCreate
from analytics_engine.services.enrichment import (
    AgentParser,
    GeoResolver,
    enrich,
    null_geo_resolver,
    parse_agent,
)
from analytics_engine.services.event_store import EventStore
from analytics_engine.utils.timeutils import utcnow

logger = logging.getLogger(__name__)


@dataclass
class RequestContext:
    """What the transport knows about the sender."""
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    accept_language: Optional[str] = None


class IngestionService:
    """Collects events for one authenticated application."""

    def __init__(
        self,
        store: EventStore,
        cache,
        geo_resolver: GeoResolver = null_geo_resolver,
        agent_parser: AgentParser = parse_agent,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.cache = cache
        self.geo_resolver = geo_resolver
        self.agent_parser = agent_parser
        self.clock = clock

    def _enrich(self, raw: EventCreate, context: RequestContext, received_at: datetime):
        return enrich(
            raw,
            user_agent=context.user_agent,
            ip_address=context.ip_address,
            received_at=received_at,
            accept_language=context.accept_language,
            geo_resolver=self.geo_resolver,
            agent_parser=self.agent_parser,
        )

    def collect(self, application: Application, raw: EventCreate, context: RequestContext) -> Event:
        """
        Enrich and store one event, then invalidate the application's cache.

        Raises:
            StorageUnavailable: event could not be stored
        """
        enriched = self._enrich(raw, context, self.clock())
        row = self.store.append(application.id, enriched)
        invalidate_application(self.cache, application.id)

        logger.info(
            f"Event collected for app {application.id}: "
            f"event={row.event} device={row.device} session={row.session_id}"
        )
        return row

    def collect_batch(
        self,
        application: Application,
        raws: List[EventCreate],
        context: RequestContext,
    ) -> List[Event]:
        """Store a batch atomically; one invalidation sweep for the whole batch."""
        received_at = self.clock()
        enriched = [self._enrich(raw, context, received_at) for raw in raws]
        rows = self.store.append_many(application.id, enriched)
        invalidate_application(self.cache, application.id)

        logger.info(f"Batch collected for app {application.id}: {len(rows)} events")
        return rows

    def delete(self, application: Application, event_id) -> None:
        """Administrative delete; cached aggregations are swept like after a write."""
        self.store.delete_event(application.id, event_id)
        invalidate_application(self.cache, application.id)
        logger.info(f"Event {event_id} deleted for app {application.id}")
