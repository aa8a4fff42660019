"""
SQLAlchemy models
"""
from analytics_engine.models.application import Application
from analytics_engine.models.event import Event

__all__ = [
    "Application",
    "Event",
]

# Import Base for Alembic
from analytics_engine.core.database import Base
