"""Configuration settings for the help-desk flow chatbot"""
import os
from pydantic_settings import BaseSettings


def detect_environment() -> str:
    """
    Detect current environment from the ENVIRONMENT variable.
    Returns: 'dev', 'staging', or 'prod'
    """
    explicit_env = os.getenv("ENVIRONMENT", "").lower()
    if explicit_env in ("dev", "staging", "prod", "production", "development"):
        if explicit_env == "production":
            return "prod"
        if explicit_env == "development":
            return "dev"
        return explicit_env

    # Local development
    return "dev"


class Settings(BaseSettings):
    """Application settings using Pydantic for validation and environment variable loading"""

    # Flow engine knobs
    DEBOUNCE_WINDOW_MS: int = 2000
    MAX_ATTEMPTS: int = 3
    SESSION_TIMEOUT_MS: int = 30 * 60 * 1000
    REAPER_INTERVAL_MS: int = 5 * 60 * 1000
    MESSAGE_LOG_CAP: int = 50
    MAX_MESSAGE_LENGTH: int = 1000
    CONTEXT_DATA_MAX_KEYS: int = 32

    # Application settings
    SERVICE_NAME: str = "ChatbotService"
    SERVICE_VERSION: str = "1.0.0"
    ENVIRONMENT: str = detect_environment()
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    @property
    def is_production(self) -> bool:
        """Check if running in production environment"""
        return self.ENVIRONMENT == "prod"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment"""
        return self.ENVIRONMENT == "dev"

    class Config:
        # Load from .env file
        env_file = ".env"
        case_sensitive = False


# Global settings instance
settings = Settings()
