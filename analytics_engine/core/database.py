"""
Database connection and session management
"""
from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import declarative_base, sessionmaker

from analytics_engine.core.config import settings


def _engine_options(database_url: str) -> dict:
    """Pool and timeout options for the configured backend."""
    url = make_url(database_url)

    if url.get_backend_name() == "sqlite":
        return {"connect_args": {"check_same_thread": False}}

    options = {
        "pool_pre_ping": True,
        "pool_size": 10,
        "max_overflow": 20,
        "pool_timeout": settings.DB_POOL_TIMEOUT,
        "pool_recycle": 3600,  # Recycle connections after 1 hour
    }
    if url.get_backend_name() == "postgresql":
        options["connect_args"] = {
            "connect_timeout": settings.DB_CONNECT_TIMEOUT,
            # UTC session so hour extraction and date bounds match stored UTC
            "options": f"-c statement_timeout={settings.DB_STATEMENT_TIMEOUT_MS} -c timezone=UTC",
        }
    return options


# Create engine with timeout settings
engine = create_engine(settings.DATABASE_URL, **_engine_options(settings.DATABASE_URL))

# Session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for models
Base = declarative_base()


def get_db():
    """
    Dependency for getting database session.
    Use in FastAPI route dependencies.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
