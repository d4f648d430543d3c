"""Application settings loaded from environment variables with SHIFTLEDGER_ prefix."""
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    shiftledger configuration.

    All values can be overridden via environment variables prefixed with ``SHIFTLEDGER_``.
    For example, ``SHIFTLEDGER_DATABASE_URL`` sets ``database_url``.
    """

    # Database (PostgreSQL in production, SQLite locally)
    database_url: str = "sqlite:///./shiftledger.db"
    store_timeout_seconds: int = 10

    # Environment
    environment: Literal["dev", "staging", "production"] = "dev"
    log_level: str = "INFO"

    # Version chains
    max_chain_length: int = 10000

    # Audit reads
    default_entity_log_limit: int = 50
    default_organization_log_limit: int = 100
    history_timestamp_format: str = "%d.%m.%Y, %H:%M:%S"

    model_config = {
        "env_prefix": "SHIFTLEDGER_",
        "case_sensitive": False,
    }

    @field_validator("database_url")
    @classmethod
    def _normalize_postgres_scheme(cls, value: str) -> str:
        # Render/Heroku hand out postgres:// but SQLAlchemy needs postgresql://
        if value.startswith("postgres://"):
            return value.replace("postgres://", "postgresql://", 1)
        return value


settings = Settings()
