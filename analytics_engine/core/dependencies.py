"""
FastAPI dependencies: connection handles, services and API key authentication
"""
import logging
from typing import Optional

from fastapi import Depends, Header, Query, Request
from sqlalchemy.orm import Session

from analytics_engine.core.database import get_db
from analytics_engine.core.errors import AuthenticationFailed
from analytics_engine.models.application import Application
from analytics_engine.services.analytics_service import AnalyticsService
from analytics_engine.services.credential_service import CredentialService
from analytics_engine.services.event_store import EventStore
from analytics_engine.services.ingestion_service import IngestionService, RequestContext

logger = logging.getLogger(__name__)


def get_cache(request: Request):
    """Cache handle built at startup (see main.startup)."""
    return request.app.state.cache


def get_geo_resolver(request: Request):
    return request.app.state.geo_resolver


def get_api_key(
    x_api_key: Optional[str] = Header(None),
    authorization: Optional[str] = Header(None),
    api_key: Optional[str] = Query(None),
) -> Optional[str]:
    """
    Presented API key, looked up in order:
    X-API-Key header, Authorization: Bearer header, api_key query parameter.
    """
    if x_api_key:
        return x_api_key.strip()
    if authorization and authorization.lower().startswith("bearer "):
        return authorization[7:].strip()
    if api_key:
        return api_key.strip()
    return None


def get_application(
    request: Request,
    api_key: Optional[str] = Depends(get_api_key),
    db: Session = Depends(get_db),
) -> Application:
    """
    Authenticate the request by API key.

    Raises:
        AuthenticationFailed: for every failure cause alike
    """
    application = CredentialService(db).authenticate(api_key)
    if application is None:
        logger.warning(
            f"Authentication failed: {request.method} {request.url.path} "
            f"from {request.client.host if request.client else 'unknown'}"
        )
        raise AuthenticationFailed()
    return application


def get_request_context(request: Request) -> RequestContext:
    return RequestContext(
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
        accept_language=request.headers.get("accept-language"),
    )


def get_event_store(db: Session = Depends(get_db)) -> EventStore:
    return EventStore(db)


def get_analytics_service(
    store: EventStore = Depends(get_event_store),
    cache=Depends(get_cache),
) -> AnalyticsService:
    return AnalyticsService(store, cache)


def get_ingestion_service(
    store: EventStore = Depends(get_event_store),
    cache=Depends(get_cache),
    geo_resolver=Depends(get_geo_resolver),
) -> IngestionService:
    return IngestionService(store, cache, geo_resolver=geo_resolver)
