"""
Application configuration using Pydantic Settings
"""
from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    """Application settings"""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    # App
    APP_NAME: str = "Unified Analytics Engine"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "production"
    LOG_LEVEL: str = "INFO"

    # CORS
    CORS_ORIGINS: List[str] = ["*"]

    # Database
    DATABASE_URL: str = Field(default="sqlite:///./analytics.db")
    DB_CONNECT_TIMEOUT: int = 10  # seconds
    DB_STATEMENT_TIMEOUT_MS: int = 30000
    DB_POOL_TIMEOUT: int = 30  # seconds to wait for a pooled connection

    # Redis
    REDIS_URL: str = Field(default="redis://localhost:6379")
    REDIS_SOCKET_TIMEOUT: float = 5.0
    REDIS_MAX_CONNECTIONS: int = 20

    # API keys
    API_KEY_LENGTH: int = 32
    API_KEY_EXPIRY_DAYS: int = 365
    API_KEY_HASH_ROUNDS: int = 12  # bcrypt cost factor
    AUTH_SCAN_WARN_THRESHOLD: int = 1000  # active applications scanned per authentication

    # Cache TTL in seconds
    CACHE_TTL_EVENTS: int = 300
    CACHE_TTL_STATS: int = 120
    CACHE_TTL_GENERAL: int = 600

    # Rate limiting (slowapi notation)
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_COLLECT: str = "1000/15minutes"
    RATE_LIMIT_BATCH: str = "100/15minutes"

    # Ingestion
    BATCH_MAX_EVENTS: int = 100
    EVENT_NAME_MAX_LENGTH: int = 100

    # Enrichment
    GEOIP_DB_PATH: Optional[str] = None  # MaxMind GeoLite2-City.mmdb


settings = Settings()
