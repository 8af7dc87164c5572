"""Application configuration via environment variables."""
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """App settings loaded from .env or environment."""

    SERVICE_NAME: str = "campus-ledger"
    # Empty means the in-process store; any SQLAlchemy URL selects the relational store.
    DATABASE_URL: str = ""
    DB_FALLBACK_TO_MEMORY: bool = True
    SEED_SAMPLE_EVENT: bool = True
    CORS_ORIGINS: str = "*"
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"


settings = Settings()
