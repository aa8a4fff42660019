"""
Business logic services
Multi-tenant: every read and write is scoped by app_id
"""
from analytics_engine.services.credential_service import CredentialService
from analytics_engine.services.event_store import EventStore
from analytics_engine.services.analytics_service import AnalyticsService
from analytics_engine.services.ingestion_service import IngestionService, RequestContext

__all__ = [
    "CredentialService",
    "EventStore",
    "AnalyticsService",
    "IngestionService",
    "RequestContext",
]
