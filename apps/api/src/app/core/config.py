"""
Application Configuration

Settings are read from environment variables (and an optional .env file)
using pydantic-settings. Import ``settings`` for the process-wide instance or
call ``get_settings()`` where a dependency is preferred.
"""

from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Placeholder secrets are only acceptable outside production
_DEV_SESSION_SECRET = "dev-session-secret-change-me"
_DEV_CHECKIN_SECRET = "dev-checkin-secret-change-me"


class Settings(BaseSettings):
    """Runtime configuration for the EK-LS API."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Environment
    python_env: str = "development"
    cors_origins: str = "http://localhost:3000"

    # Storage
    database_url: str = "sqlite+aiosqlite:///./eklas.db"
    database_echo: bool = False
    storage_timeout_seconds: float = 5.0

    # Redis (revocation store)
    redis_url: str = "redis://localhost:6379/0"
    redis_timeout_seconds: float = 0.5

    # Session tokens
    session_token_secret: str = _DEV_SESSION_SECRET
    session_token_ttl_minutes: int = Field(default=60 * 24 * 7, gt=0)

    # Revocation
    # Revocations are retained for at least this long even when the token
    # expires sooner; keeps a day of logout history and absorbs clock skew
    # between workers. Set to 0 to keep records only for the token lifetime.
    revocation_floor_ttl_seconds: int = Field(default=60 * 60 * 24, ge=0)
    # When Redis is unreachable: True allows the request (and logs), False denies
    revocation_fail_open: bool = True

    # Check-in tokens
    checkin_token_secret: str = _DEV_CHECKIN_SECRET
    checkin_namespace_prefix: str = "EKLS"
    checkin_window_hours: int = Field(default=24, gt=0)
    checkin_clock_skew_seconds: int = Field(default=60, ge=0)
    checkin_sweep_interval_hours: int = Field(default=12, gt=0)
    checkin_qr_size: int = 200

    @model_validator(mode="after")
    def _require_real_secrets_in_production(self) -> "Settings":
        if self.is_production:
            if self.session_token_secret == _DEV_SESSION_SECRET:
                raise ValueError("SESSION_TOKEN_SECRET must be set in production")
            if self.checkin_token_secret == _DEV_CHECKIN_SECRET:
                raise ValueError("CHECKIN_TOKEN_SECRET must be set in production")
            if self.session_token_secret == self.checkin_token_secret:
                raise ValueError("Session and check-in secrets must differ")
        return self

    @property
    def is_development(self) -> bool:
        return self.python_env.lower() == "development"

    @property
    def is_production(self) -> bool:
        return self.python_env.lower() == "production"

    @property
    def cors_origins_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


@lru_cache
def get_settings() -> Settings:
    """Return the cached settings instance."""
    return Settings()


settings = get_settings()
