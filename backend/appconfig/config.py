"""
App Config - Configuration
"""
from pydantic_settings import BaseSettings
from typing import List, Optional
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    # App Info
    APP_NAME: str = "App Config"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # API Settings
    API_V1_PREFIX: str = "/api/v1"
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # CORS
    CORS_ORIGINS: List[str] = ["*"]
    CORS_ALLOW_CREDENTIALS: bool = True
    CORS_ALLOW_METHODS: List[str] = ["*"]
    CORS_ALLOW_HEADERS: List[str] = ["*"]

    # Database (single local datastore)
    DATABASE_URL: str = "sqlite:///./appconfig.db"
    DATABASE_ECHO: bool = False
    DATABASE_TIMEOUT: int = 30  # seconds SQLite waits for a write lock

    # Commands
    COMMAND_WORKERS: int = 4
    CLONED_NAME_FORMAT: str = "Copy of {name}"

    # External update call
    UPDATE_SCHEME: str = "http"
    UPDATE_TIMEOUT: Optional[float] = None  # None = wait as long as the target takes

    # WebSocket
    WS_HEARTBEAT_INTERVAL: int = 30  # seconds

    # Logging
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "allow"  # Allow extra fields from .env file


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


settings = get_settings()
