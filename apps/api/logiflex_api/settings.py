"""Application settings and configuration."""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SECRET_KEY = "dev-secret-key-change-in-production"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: Optional[str] = None
    postgres_user: str = "logiflex"
    postgres_password: str = "logiflex_dev_password"
    postgres_db: str = "logiflex"
    postgres_host: str = "localhost"
    postgres_port: int = 5432

    # Redis (Celery broker and readiness check)
    redis_url: str = "redis://localhost:6379/0"

    # API
    api_port: int = 8000
    api_host: str = "0.0.0.0"
    secret_key: str = DEFAULT_SECRET_KEY
    environment: str = "development"

    # Logging
    log_level: str = "INFO"

    # Notifications: "database" writes rows in-process, "celery" enqueues to the worker
    notification_backend: str = "database"

    # Mock EDS signature service
    eds_issuer: str = "Mock Kazakhstan Certificate Authority"
    eds_certificate_validity_days: int = 365
    eds_sign_latency_ms: int = 500
    eds_verify_latency_ms: int = 300
    eds_verify_success_rate: float = 0.95

    # CORS
    cors_origins: list[str] = ["*"]
    cors_allow_credentials: bool = True
    cors_allow_methods: list[str] = ["*"]
    cors_allow_headers: list[str] = ["*"]

    @property
    def database_url_computed(self) -> str:
        """Compute database URL if not explicitly set."""
        if self.database_url:
            return self.database_url
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment.lower() == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development."""
        return self.environment.lower() in ("development", "dev", "test")

    def validate_production_settings(self):
        """Validate settings for production environment."""
        if self.is_development:
            return
        if self.secret_key == DEFAULT_SECRET_KEY:
            raise ValueError(
                "SECRET_KEY must be set in production. "
                "API key digests are computed with it."
            )
        if self.notification_backend not in ("database", "celery"):
            raise ValueError(
                f"NOTIFICATION_BACKEND must be 'database' or 'celery', got {self.notification_backend}"
            )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
