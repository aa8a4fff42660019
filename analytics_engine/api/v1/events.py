"""
Event collection and management endpoints - authenticated by API key.
"""
import logging
import math
from datetime import date
from typing import Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from slowapi import Limiter
from slowapi.util import get_remote_address

from analytics_engine.core.config import settings
from analytics_engine.core.dependencies import (
    get_application,
    get_event_store,
    get_ingestion_service,
    get_request_context,
)
from analytics_engine.models.application import Application
from analytics_engine.schemas.event import (
    BatchCollectResponse,
    CollectResponse,
    EventBatch,
    EventCreate,
    EventResponse,
)
from analytics_engine.schemas.response import api_response
from analytics_engine.services.event_store import EventStore
from analytics_engine.services.ingestion_service import IngestionService, RequestContext

logger = logging.getLogger(__name__)
router = APIRouter()
limiter = Limiter(key_func=get_remote_address, enabled=settings.RATE_LIMIT_ENABLED)


@router.post("/collect", status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.RATE_LIMIT_COLLECT)
def collect_event(
    request: Request,
    payload: EventCreate,
    application: Application = Depends(get_application),
    context: RequestContext = Depends(get_request_context),
    service: IngestionService = Depends(get_ingestion_service),
):
    """
    Collect one analytics event.
    Device, browser, OS and location are filled in from the request when absent.
    """
    row = service.collect(application, payload, context)
    result = CollectResponse(event_id=row.id, timestamp=row.timestamp)
    return api_response("Event collected successfully", result.model_dump(mode="json"))


@router.post("/batch", status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.RATE_LIMIT_BATCH)
def collect_batch(
    request: Request,
    payload: EventBatch,
    application: Application = Depends(get_application),
    context: RequestContext = Depends(get_request_context),
    service: IngestionService = Depends(get_ingestion_service),
):
    """Collect up to BATCH_MAX_EVENTS events in one transaction."""
    rows = service.collect_batch(application, payload.events, context)
    result = BatchCollectResponse(accepted=len(rows), event_ids=[row.id for row in rows])
    return api_response("Batch events processed successfully", result.model_dump(mode="json"))


@router.get("")
def list_events(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    sort_by: Literal["timestamp", "event", "device", "url"] = Query("timestamp"),
    sort_order: Literal["asc", "desc"] = Query("desc"),
    event: Optional[str] = Query(None, max_length=100),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    application: Application = Depends(get_application),
    store: EventStore = Depends(get_event_store),
):
    """Page through the application's events."""
    rows, total = store.list_events(
        application.id,
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
        event=event,
        start_date=start_date,
        end_date=end_date,
    )
    return api_response(
        "Events retrieved successfully",
        {
            "events": [EventResponse.model_validate(row).model_dump(mode="json") for row in rows],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": math.ceil(total / limit) if total else 0,
            },
        },
    )


@router.get("/{event_id}")
def get_event(
    event_id: UUID,
    application: Application = Depends(get_application),
    store: EventStore = Depends(get_event_store),
):
    """One event of the application."""
    row = store.get_event(application.id, event_id)
    return api_response(
        "Event retrieved successfully",
        {"event": EventResponse.model_validate(row).model_dump(mode="json")},
    )


@router.delete("/{event_id}")
def delete_event(
    event_id: UUID,
    application: Application = Depends(get_application),
    service: IngestionService = Depends(get_ingestion_service),
):
    """Administrative delete of one event."""
    service.delete(application, event_id)
    return api_response("Event deleted successfully", {"event_id": str(event_id)})
