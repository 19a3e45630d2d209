from pydantic_settings import BaseSettings
from pydantic import field_validator
from typing import Optional
from decimal import Decimal
from functools import lru_cache
import json


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str

    # Database Connection Pool Settings
    DB_POOL_SIZE: int = 10  # Base number of connections in pool
    DB_MAX_OVERFLOW: int = 20  # Extra connections allowed beyond pool_size
    DB_POOL_TIMEOUT: int = 30  # Seconds to wait for connection from pool
    DB_POOL_RECYCLE: int = 1800  # Recycle connections after 30 minutes
    AUTO_CREATE_TABLES: bool = True  # create_all on startup (use Alembic in production)

    # App Settings
    APP_NAME: str = "Drop Market Backend"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # CORS - accepts JSON string, comma-separated, or list
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:8081",
        "http://localhost:19006",
    ]

    # Redis Cache Settings
    REDIS_URL: Optional[str] = None  # e.g., "redis://localhost:6379/0"
    CACHE_ENABLED: bool = True
    CATALOG_CACHE_TTL: int = 300  # 5 minutes for aggregated catalog feeds

    # Drop Lifecycle
    DROP_DURATION_DAYS: int = 5  # end_time - start_time for every drop
    DROP_LIFECYCLE_INTERVAL_MINUTES: int = 1  # How often to activate/close drops
    SCHEDULER_ENABLED: bool = True
    SCHEDULER_TIMEZONE: str = "Europe/Rome"

    # Booking
    BOOKING_MAX_RETRIES: int = 2  # Additional attempts on transient write conflicts
    BOOKING_RETRY_BACKOFF_SECONDS: float = 0.5  # Linear: attempt * backoff
    CLAIM_TIMEOUT_SECONDS: float = 15.0

    # Payments
    PAYMENT_PROVIDER: str = "cash_on_pickup"  # Options: cash_on_pickup, razorpay
    PAYMENT_CURRENCY: str = "EUR"
    RAZORPAY_KEY_ID: str = ""
    RAZORPAY_KEY_SECRET: str = ""

    # Fulfillment
    DEFAULT_COMMISSION_RATE: Decimal = Decimal("0.05")  # Pickup point commission on order value
    UNKNOWN_CUSTOMER_LABEL: str = "Customer"  # Shown when a profile lookup fails

    @field_validator('CORS_ORIGINS', mode='before')
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                return [origin.strip() for origin in v.split(',')]
        return v

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
