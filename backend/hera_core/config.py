"""Application Configuration — environment-driven settings via pydantic-settings.

Invariants:
    - All secrets come from environment variables (never hardcoded outside dev defaults)
    - get_settings() is cached (lru_cache) — single instance per process
    - Deadlines and TTLs are expressed in the unit named by the field suffix

Design Decisions:
    - pydantic-settings over raw os.environ: validation, type coercion, .env file support
    - Defaults provided for all non-secret settings: works out-of-the-box with docker-compose
"""

from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Database
    database_url: str = (
        "postgresql+asyncpg://hera:hera@db:5432/hera"
    )

    @field_validator("database_url", mode="before")
    @classmethod
    def convert_postgres_url(cls, v: str) -> str:
        """Hosted providers hand out postgresql:// but asyncpg needs postgresql+asyncpg://."""
        if isinstance(v, str) and v.startswith("postgresql://"):
            return v.replace("postgresql://", "postgresql+asyncpg://", 1)
        return v

    database_pool_size: int = 20
    database_max_overflow: int = 10
    store_retry_backoff_ms: int = 50

    # Identity (tokens are issued elsewhere; we only verify them)
    jwt_secret: str = "dev-only-secret-change-me-0123456789abcdef"
    jwt_algorithm: str = "HS256"

    # Policy
    private_stat_roles: list[str] = ["admin", "owner"]
    confirmation_ttl_seconds: int = 120

    # Stats
    stat_timeout_ms: int = 5_000
    max_request_deadline_ms: int = 30_000
    default_currency: str = "USD"

    # Abuse prevention (best-effort, per replica)
    rate_limit_per_minute: int = 120
    rate_limit_burst: int = 20
    rate_limit_max_identities: int = 10_000

    # API
    cors_origins: list[str] = ["http://localhost:3000"]

    # Observability
    log_level: str = "INFO"
    log_format: str = "json"


@lru_cache
def get_settings() -> Settings:
    return Settings()
