"""
Event model - one analytics occurrence, immutable once stored
"""
from sqlalchemy import Column, String, Text, DateTime, JSON, ForeignKey, Index, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid

from analytics_engine.core.database import Base

DEVICE_TYPES = ("mobile", "desktop", "tablet")


class Event(Base):
    """Event model - enriched analytics event scoped by app_id"""

    __tablename__ = "events"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    app_id = Column(Uuid(as_uuid=True), ForeignKey("applications.id"), nullable=False, index=True)
    event = Column(String(100), nullable=False, index=True)  # e.g., "page_view", "button_click"
    user_id = Column(String(200), nullable=True, index=True)
    session_id = Column(String(200), nullable=True, index=True)
    url = Column(Text, nullable=False)
    referrer = Column(Text, nullable=True)
    device = Column(String(20), nullable=False)  # mobile, desktop, tablet
    ip_address = Column(String(64), nullable=False)
    user_agent = Column(Text, nullable=True)
    # "metadata" is reserved on declarative classes
    event_metadata = Column("metadata", JSON, nullable=False, default=dict)
    timestamp = Column(DateTime(timezone=True), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    # Relationships
    application = relationship("Application", backref="events")

    # Indexes for common queries
    __table_args__ = (
        Index("idx_events_app_event_time", "app_id", "event", "timestamp"),
        Index("idx_events_app_user_time", "app_id", "user_id", "timestamp"),
        Index("idx_events_app_session_time", "app_id", "session_id", "timestamp"),
        Index("idx_events_app_time", "app_id", "timestamp"),
    )

    def __repr__(self):
        return f"<Event(id={self.id}, app_id={self.app_id}, event={self.event}, timestamp={self.timestamp})>"
