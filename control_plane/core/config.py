"""Application configuration (settings and environment).

Single source of truth for all configuration. Uses pydantic-settings
with .env support. Backend-specific requirements (DATABASE_URL for
postgres, IDENTITY_URL for the http identity backend, SECRET_KEY always)
are validated at load time.
"""

from functools import lru_cache

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_DATABASE_BACKENDS = ("postgres", "memory")
_IDENTITY_BACKENDS = ("http", "memory")


class Settings(BaseSettings):
    """Application settings loaded from environment and .env.

    All settings are optional with defaults except those validated in
    validate_backends (database_url, identity_url, identity_service_key,
    secret_key).
    """

    # App
    app_name: str = "tenant-control-plane"
    app_version: str = "1.0.0"
    debug: bool = False

    # Database: "postgres" (SQLAlchemy async + asyncpg) or "memory" (process-local)
    database_backend: str = "postgres"
    database_url: str = ""
    database_echo: bool = False
    # Create tables on startup (development only; production schemas are managed externally)
    database_create_schema: bool = False
    # Optional pool/driver overrides (None = use defaults in database.py)
    db_pool_size: int | None = None
    db_max_overflow: int | None = None
    db_command_timeout: int | None = None

    # Identity provider: "http" (GoTrue-style admin API) or "memory"
    identity_backend: str = "http"
    identity_url: str = ""
    identity_service_key: SecretStr = SecretStr("")
    # Upper bound for any single identity-provider call
    identity_timeout_seconds: float = 10.0

    # Access tokens issued by the identity provider (verified locally)
    secret_key: SecretStr = SecretStr("")
    algorithm: str = "HS256"
    jwt_audience: str | None = None
    access_token_expire_minutes: int = 60

    # Invitation redirect base; invitations land on {app_url}/auth/callback
    app_url: str = "http://localhost:3000"

    # Bulk provisioning
    bulk_max_batch_size: int = 50

    # CORS
    allowed_origins: str = "http://localhost:3000,http://localhost:8080"

    # Request / middleware
    request_id_header: str = "X-Request-ID"

    # Redis Cache
    redis_enabled: bool = False
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0
    redis_password: SecretStr | None = None
    cache_ttl_permissions: int = 300

    # OpenTelemetry
    telemetry_enabled: bool = False
    telemetry_exporter: str = "console"
    telemetry_otlp_endpoint: str | None = None
    telemetry_sample_rate: float = 1.0
    telemetry_environment: str = "development"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    @model_validator(mode="after")
    def validate_backends(self) -> "Settings":
        """Validate backend selection and the secrets each backend needs.

        - Postgres: DATABASE_URL required.
        - Http identity backend: IDENTITY_URL and IDENTITY_SERVICE_KEY required.
        - SECRET_KEY always required (access token verification).
        """
        if self.database_backend not in _DATABASE_BACKENDS:
            raise ValueError(
                f"database_backend must be 'postgres' or 'memory', got: {self.database_backend!r}"
            )
        if self.database_backend == "postgres" and not self.database_url:
            raise ValueError(
                "DATABASE_URL is required when database_backend is 'postgres'. "
                "Set in environment or .env file."
            )
        if self.identity_backend not in _IDENTITY_BACKENDS:
            raise ValueError(
                f"identity_backend must be 'http' or 'memory', got: {self.identity_backend!r}"
            )
        if self.identity_backend == "http":
            if not self.identity_url:
                raise ValueError(
                    "IDENTITY_URL is required when identity_backend is 'http'."
                )
            if not self.identity_service_key.get_secret_value():
                raise ValueError(
                    "IDENTITY_SERVICE_KEY is required when identity_backend is 'http'."
                )
        if not self.secret_key.get_secret_value():
            raise ValueError(
                "SECRET_KEY is required (identity provider JWT secret). "
                "Generate with: openssl rand -hex 32."
            )
        if self.bulk_max_batch_size < 1:
            raise ValueError("bulk_max_batch_size must be at least 1")
        if self.identity_timeout_seconds <= 0:
            raise ValueError("identity_timeout_seconds must be positive")
        return self

    @property
    def invitation_redirect_url(self) -> str:
        """Absolute URL invited users are sent to after accepting."""
        return f"{self.app_url.rstrip('/')}/auth/callback"


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings (single instance per process).

    Validation runs on first call, not at import time. In tests, call
    get_settings.cache_clear() before overriding env vars so the next
    get_settings() uses the new values.

    Returns:
        Loaded and validated Settings instance.
    """
    return Settings()
