"""
Application configuration using Pydantic Settings.
Loads from environment variables with sensible defaults.
"""

from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "Hospital Queue Management"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # MongoDB
    MONGODB_URL: str = "mongodb://localhost:27017"
    DATABASE_NAME: str = "hospital_queue"

    # JWT Authentication
    SECRET_KEY: str = "hospital-queue-secret-key-change-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24  # 24 hours

    # First admin, created at startup when both are set
    ADMIN_EMAIL: Optional[str] = None
    ADMIN_PASSWORD: Optional[str] = None

    # Queue numbering
    QUEUE_NUMBER_WIDTH: int = 3
    NUMBER_INSERT_ATTEMPTS: int = 25
    CARD_NUMBER_PREFIX: str = "CARD"
    CARD_NUMBER_SEED_OFFSET: int = 1

    # Dispatch and wait-time estimation
    DEFAULT_SERVICE_MINUTES: int = 15
    DEFAULT_DEPARTMENT: str = "General Medicine"
    DISPLAY_WAITING_LIMIT: int = 5

    # A claim whose entry never got written is taken over after this long
    CLAIM_STALE_SECONDS: int = 120

    # Mock SMS gateway
    SMS_SENDER_ID: str = "HOSPITAL"
    SMS_SIMULATED_DELAY_SECONDS: float = 0.0
    SMS_COST: float = 0.50

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
