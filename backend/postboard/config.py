"""Application Configuration: environment-driven settings via pydantic-settings.

Invariants:
    - Collaborator URLs and database URL come from environment variables
    - get_settings() is cached (lru_cache), single instance per process

Design Decisions:
    - Defaults for every setting: works out-of-the-box with docker-compose
"""

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    """Postboard settings, read from the environment or .env."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Database
    database_url: str = (
        "postgresql+asyncpg://postboard:postboard@db:5432/postboard"
    )

    @field_validator("database_url", mode="before")
    @classmethod
    def convert_postgres_url(cls, v: str) -> str:
        """Hosting providers hand out postgresql:// but asyncpg needs postgresql+asyncpg://."""
        if isinstance(v, str) and v.startswith("postgresql://"):
            return v.replace("postgresql://", "postgresql+asyncpg://", 1)
        return v

    database_pool_size: int = 20
    database_max_overflow: int = 10
    database_create_schema: bool = True

    # Collaborators
    identity_url: str = "http://user-server:3000"
    ledger_url: str = "http://point-server:3000"
    # credential for deltas replayed by reconcile, when no caller token exists
    ledger_service_token: str | None = None
    collaborator_timeout_seconds: float = 5.0
    collaborator_max_retries: int = 3
    collaborator_base_delay_ms: int = 200
    collaborator_max_delay_ms: int = 5_000

    # API
    cors_origins: list[str] = ["*"]

    # Observability
    log_level: str = "INFO"
    log_format: str = "json"


@lru_cache
def get_settings() -> Settings:
    return Settings()
