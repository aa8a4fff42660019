"""
Pydantic schemas for Application API
"""
import re
from pydantic import BaseModel, Field, field_validator
from typing import Literal, Optional
from uuid import UUID
from datetime import datetime

from analytics_engine.utils.timeutils import ensure_utc

DOMAIN_PATTERN = re.compile(r"^https?://.+\..+")


class ApplicationCreate(BaseModel):
    """Schema for registering an application"""
    name: str = Field(..., min_length=1, max_length=100)
    domain: str = Field(..., max_length=500)
    type: Literal["web", "mobile"]
    created_by: str = Field(..., min_length=1, max_length=200)

    @field_validator("name", "created_by", mode="before")
    @classmethod
    def strip_text(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("domain")
    @classmethod
    def check_domain(cls, value: str) -> str:
        value = value.strip()
        if not DOMAIN_PATTERN.match(value):
            raise ValueError("Please provide a valid domain URL")
        return value


class ApplicationOwnerAction(BaseModel):
    """Schema for revoke/regenerate requests"""
    app_id: UUID
    user_id: str = Field(..., min_length=1, max_length=200)


class ApplicationResponse(BaseModel):
    """Schema for application response (never carries the key hash)"""
    id: UUID
    name: str
    domain: str
    type: str
    is_active: bool
    expires_at: datetime
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    @field_validator("expires_at", "created_at", "updated_at")
    @classmethod
    def as_utc(cls, value):
        return ensure_utc(value)


class ApplicationWithKey(ApplicationResponse):
    """Returned once, on registration or regeneration"""
    api_key: str
