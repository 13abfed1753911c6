"""
Application Configuration - Pydantic Settings for type-safe config.

FAIL FAST - Critical config (database, signing secret) is validated at startup.
There is no built-in signing secret: a missing JWT_SECRET stops the process.
"""

import sys

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

GEMINI_GENERATE_URL = (
    "https://generativelanguage.googleapis.com/v1beta/models/gemini-1.5-flash:generateContent"
)

MIN_JWT_SECRET_LENGTH = 32


class ConfigurationError(Exception):
    """Raised when critical configuration is missing or invalid."""

    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database Configuration - NO DEFAULT for production safety
    database_url: str = ""
    database_pool_size: int = 10
    database_max_overflow: int = 10
    database_pool_timeout: int = 30
    database_pool_recycle: int = 3600
    auto_migrate: bool = False

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 5000
    api_title: str = "Chat API"
    api_version: str = "0.1.0"
    api_description: str = "Token-authenticated chat backend with credit metering"
    environment: str = "production"  # development exposes error detail
    cors_origins: str = "http://localhost:3000"

    # Security - NO DEFAULT secret
    jwt_secret: str = ""
    jwt_algorithm: str = "HS256"
    access_token_expire_days: int = 7
    refresh_token_expire_days: int = 30

    # Rate limiting (fixed window, per client IP, /api only)
    rate_limit_window_seconds: int = 15 * 60
    rate_limit_max_requests: int = 100
    trust_proxy: bool = False

    # Accounts
    default_credits: int = 100
    default_plan: str = "free"

    # Response generation
    ai_api_key: str = ""  # empty selects the canned mock generator
    ai_api_url: str = GEMINI_GENERATE_URL
    ai_model: str = "gemini-1.5-flash"
    ai_timeout_seconds: float = 60.0
    ai_history_turns: int = 10
    mock_response_min_delay_ms: int = 500
    mock_response_max_delay_ms: int = 2500

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # json or console

    # Observability - Metrics
    metrics_enabled: bool = True

    # Observability - Tracing
    tracing_enabled: bool = False
    otlp_endpoint: str = "http://otel-collector:4317"
    otlp_insecure: bool = True
    service_name: str = "chat-api"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @model_validator(mode="after")
    def validate_critical_config(self) -> "Settings":
        """
        FAIL FAST: Validate critical configuration at startup.

        The app MUST NOT start if critical config is missing.
        """
        errors: list[str] = []

        if not self.database_url:
            errors.append("DATABASE_URL is required but empty or missing")
        elif not self.database_url.startswith(("postgresql", "postgres")):
            errors.append(
                f"DATABASE_URL must be a PostgreSQL URL, got: {self.database_url[:20]}..."
            )

        if not self.jwt_secret:
            errors.append("JWT_SECRET is required but empty or missing")
        elif len(self.jwt_secret) < MIN_JWT_SECRET_LENGTH:
            errors.append(f"JWT_SECRET must be at least {MIN_JWT_SECRET_LENGTH} characters")

        if self.mock_response_min_delay_ms > self.mock_response_max_delay_ms:
            errors.append("MOCK_RESPONSE_MIN_DELAY_MS cannot exceed MOCK_RESPONSE_MAX_DELAY_MS")

        if self.rate_limit_window_seconds <= 0 or self.rate_limit_max_requests <= 0:
            errors.append("Rate limit window and request cap must be positive")

        if errors:
            error_msg = "\n".join(
                [
                    "",
                    "=" * 60,
                    "CRITICAL CONFIGURATION ERROR - APPLICATION CANNOT START",
                    "=" * 60,
                    *[f"  ✗ {e}" for e in errors],
                    "=" * 60,
                    "",
                ]
            )
            print(error_msg, file=sys.stderr)
            raise ConfigurationError(error_msg)

        return self

    @property
    def is_development(self) -> bool:
        """Whether error detail may be returned to clients."""
        return self.environment.lower() == "development"

    @property
    def allowed_origins(self) -> list[str]:
        """CORS origins as a list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def use_mock_generator(self) -> bool:
        """Whether replies come from the canned mock instead of the remote API."""
        return not self.ai_api_key


# Global settings instance - validates at import time
settings = Settings()
