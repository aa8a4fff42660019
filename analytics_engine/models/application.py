"""
Application model - a registered client whose traffic is tracked under one API key
"""
from sqlalchemy import Column, String, Boolean, DateTime, Uuid, Index
from sqlalchemy.sql import func
import uuid

from analytics_engine.core.database import Base

APPLICATION_TYPES = ("web", "mobile")


class Application(Base):
    """Application model - identity plus hashed API key"""

    __tablename__ = "applications"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(100), nullable=False)
    domain = Column(String(500), nullable=False)
    type = Column(String(20), nullable=False)  # web, mobile
    api_key_hash = Column(String(128), nullable=False)  # bcrypt; plaintext is never stored
    is_active = Column(Boolean, default=True, nullable=False)
    created_by = Column(String(200), nullable=False)  # owner reference
    expires_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    __table_args__ = (
        Index("idx_applications_owner_active", "created_by", "is_active"),
        Index("idx_applications_active_expiry", "is_active", "expires_at"),
    )

    def __repr__(self):
        return f"<Application(id={self.id}, name={self.name}, type={self.type}, active={self.is_active})>"
