"""
Application Settings

Process-level settings for the API and scripts, loaded from the
environment (and .env). Cache, read-path and refresh tuning live in
their own dataclass configs next to the code that uses them.
"""

from functools import lru_cache
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # Application Settings
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # Run the periodic view refresh inside the API process
    REFRESH_SCHEDULER_ENABLED: bool = False

    # Server
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"  # Ignore extra fields in .env file
        case_sensitive = False


@lru_cache
def get_settings() -> Settings:
    """Get or create cached settings instance."""
    return Settings()
