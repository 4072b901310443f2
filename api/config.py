"""
Application configuration using Pydantic Settings.

This module manages all configuration from environment variables.
"""

from functools import lru_cache
from typing import List
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    PROJECT_NAME: str = "Run Import Core"
    VERSION: str = "1.0.0"
    DEBUG: bool = False

    # Database Configuration
    DATABASE_URL: str = "sqlite:///run_import.db"
    DB_POOL_PRE_PING: bool = True

    # Workbook Parsing
    LOCATION_HEADER_PREFIX: str = "Location:"
    MACHINE_HEADER_MARKER: str = " - Machine "
    MAX_FILE_SIZE_MB: int = 10
    ALLOWED_EXTENSIONS: List[str] = [".xlsx", ".xlsm"]

    # Expiry Settings
    DEFAULT_TIMEZONE: str = "UTC"
    EXPIRY_WARNING_DAY_OFFSETS: List[int] = [-2, -1, 0]

    # Logging Configuration
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = "run_import.log"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are loaded only once.
    """
    return Settings()


# Create global settings instance
settings = get_settings()
