"""
Shared fixtures: in-memory SQLite, an in-memory cache and a TestClient
wired to both through dependency overrides.
"""
import json
import os

# Must be set before analytics_engine.core.config is imported
os.environ.setdefault("API_KEY_HASH_ROUNDS", "4")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ["RATE_LIMIT_ENABLED"] = "false"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from analytics_engine.main import app
from analytics_engine.core.database import Base, get_db
from analytics_engine.core.dependencies import get_cache
from analytics_engine.services.credential_service import CredentialService


# Test database (in-memory SQLite shared by every session)
engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class InMemoryCache:
    """Dict-backed stand-in for RedisCache; values go through JSON like Redis."""

    def __init__(self):
        self.store = {}
        self.ttls = {}

    def get(self, key):
        value = self.store.get(key)
        return json.loads(value) if value is not None else None

    def set(self, key, value, ttl):
        self.store[key] = json.dumps(value)
        self.ttls[key] = ttl
        return True

    def delete(self, key):
        self.store.pop(key, None)
        self.ttls.pop(key, None)
        return True

    def incr(self, key):
        value = int(self.get(key) or 0) + 1
        self.store[key] = json.dumps(value)
        return value

    def delete_prefix(self, prefix):
        for key in [k for k in self.store if k.startswith(prefix)]:
            self.delete(key)
        return True

    def ping(self):
        return True


@pytest.fixture(scope="function")
def db_session():
    """Create test database session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def cache():
    return InMemoryCache()


@pytest.fixture
def client(db_session, cache):
    """TestClient with database and cache overridden"""

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_cache] = lambda: cache
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def registered_app(db_session):
    """(plaintext key, application) for a freshly issued web application"""
    return CredentialService(db_session).issue(
        name="Test Site",
        domain="https://example.com",
        app_type="web",
        owner_id="owner-1",
    )
