"""
Typed aggregation payloads
"""
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class DeviceBreakdown(BaseModel):
    mobile: int = 0
    desktop: int = 0
    tablet: int = 0


class TrendInfo(BaseModel):
    change: float = 0
    trend: Literal["up", "down", "stable"] = "stable"


class Timeframe(BaseModel):
    start_date: str = "all_time"
    end_date: str = "all_time"


class EventSummary(BaseModel):
    event: str
    count: int = 0
    unique_users: int = 0
    device_breakdown: DeviceBreakdown = Field(default_factory=DeviceBreakdown)
    timeframe: Timeframe = Field(default_factory=Timeframe)
    trend: Optional[TrendInfo] = None
    conversion_rate: Optional[float] = None


class RecentEvent(BaseModel):
    event: str
    url: str
    device: str
    user_id: Optional[str] = None
    timestamp: datetime
    metadata: Dict[str, Any] = Field(default_factory=dict)


class Engagement(BaseModel):
    events_per_day: float = 0
    days_active: int = 0
    last_active: Optional[datetime] = None


class UserStats(BaseModel):
    user_id: str
    total_events: int = 0
    unique_event_count: int = 0
    unique_events: List[str] = Field(default_factory=list)
    device_details: Dict[str, Any] = Field(default_factory=dict)
    first_seen: Optional[datetime] = None
    last_seen: Optional[datetime] = None
    session_count: int = 0
    most_used_device: Optional[str] = None
    recent_events: List[RecentEvent] = Field(default_factory=list)
    engagement: Optional[Engagement] = None


class AppTotals(BaseModel):
    total_events: int = 0
    unique_users: int = 0
    unique_sessions: int = 0
    page_views: int = 0


class EventCount(BaseModel):
    event: str
    count: int
    unique_users: int


class DeviceCount(BaseModel):
    device: str
    count: int


class CountryCount(BaseModel):
    country: Optional[str] = None
    count: int
    cities: List[str] = Field(default_factory=list)


class HourCount(BaseModel):
    hour: int
    count: int


class AppAnalytics(BaseModel):
    timeframe: Timeframe = Field(default_factory=Timeframe)
    totals: AppTotals = Field(default_factory=AppTotals)
    events: List[EventCount] = Field(default_factory=list)
    devices: List[DeviceCount] = Field(default_factory=list)
    geography: List[CountryCount] = Field(default_factory=list)
    hourly_distribution: List[HourCount] = Field(default_factory=list)
    recent_activity: List[RecentEvent] = Field(default_factory=list)


class MinuteBucket(BaseModel):
    minute: datetime
    events: List[EventCount] = Field(default_factory=list)
    total_events: int = 0
    unique_users: int = 0


class RealtimeSummary(BaseModel):
    total_events: int = 0
    unique_users: int = 0


class RealtimeWindow(BaseModel):
    timeframe: str = "last_hour"
    window_minutes: int = 60
    start_time: datetime
    end_time: datetime
    data: List[MinuteBucket] = Field(default_factory=list)
    summary: RealtimeSummary = Field(default_factory=RealtimeSummary)
