"""
Pydantic schemas for Event API
"""
from ipaddress import ip_address as parse_ip
from urllib.parse import urlparse
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID
from datetime import datetime

from analytics_engine.core.config import settings
from analytics_engine.utils.timeutils import ensure_utc

DeviceType = Literal["mobile", "desktop", "tablet"]


class EventMetadata(BaseModel):
    """Client metadata; enrichment fills what the caller leaves out"""
    model_config = ConfigDict(extra="ignore")

    browser: Optional[str] = None
    os: Optional[str] = None
    screen_size: Optional[str] = None
    country: Optional[str] = None
    city: Optional[str] = None
    language: Optional[str] = None
    platform: Optional[str] = None


class EventCreate(BaseModel):
    """Raw event as sent by a client"""
    event: str = Field(..., min_length=1, max_length=settings.EVENT_NAME_MAX_LENGTH)
    url: str = Field(..., min_length=1, max_length=2048)
    referrer: Optional[str] = None
    device: Optional[DeviceType] = None
    user_id: Optional[str] = Field(default=None, max_length=200)
    session_id: Optional[str] = Field(default=None, max_length=200)
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    metadata: EventMetadata = Field(default_factory=EventMetadata)
    # Kept as text: enrichment falls back to receipt time when unparseable
    timestamp: Optional[str] = None

    @field_validator("event", "url", "referrer", "user_id", "session_id", mode="before")
    @classmethod
    def strip_text(cls, value):
        if isinstance(value, str):
            value = value.strip()
        return value

    @field_validator("user_id", "session_id", "referrer")
    @classmethod
    def empty_to_none(cls, value):
        return value or None

    @field_validator("url")
    @classmethod
    def check_url(cls, value: str) -> str:
        parsed = urlparse(value)
        if not parsed.scheme or not parsed.netloc:
            raise ValueError("Valid URL is required")
        return value

    @field_validator("ip_address")
    @classmethod
    def check_ip(cls, value):
        if value is None:
            return value
        try:
            return str(parse_ip(value.strip()))
        except ValueError:
            raise ValueError("Valid IP address is required")


class EventBatch(BaseModel):
    """Batch of raw events"""
    events: List[EventCreate] = Field(..., min_length=1, max_length=settings.BATCH_MAX_EVENTS)


class EnrichedEvent(BaseModel):
    """Event ready for storage"""
    event: str
    url: str
    referrer: Optional[str] = None
    device: DeviceType
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    ip_address: str
    user_agent: Optional[str] = None
    metadata: EventMetadata
    timestamp: datetime


class EventResponse(BaseModel):
    """Schema for a stored event"""
    id: UUID
    app_id: UUID
    event: str
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    url: str
    referrer: Optional[str] = None
    device: str
    user_agent: Optional[str] = None
    metadata: Dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("event_metadata", "metadata"),
    )
    timestamp: datetime
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    @field_validator("timestamp", "created_at")
    @classmethod
    def as_utc(cls, value):
        return ensure_utc(value)


class CollectResponse(BaseModel):
    event_id: UUID
    timestamp: datetime


class BatchCollectResponse(BaseModel):
    accepted: int
    event_ids: List[UUID]
