"""
Application Configuration - Pydantic Settings for type-safe config.

NO DICTIONARIES - All configuration is strongly typed.
FAIL FAST - Critical config is validated at startup.
"""

import sys

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when critical configuration is missing or invalid."""

    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database Configuration - NO DEFAULT for production safety
    database_url: str = ""
    database_read_url: str | None = None  # Optional read replica
    database_pool_size: int = 25
    database_max_overflow: int = 10
    database_pool_timeout: int = 30
    database_pool_recycle: int = 3600
    run_migrations_on_startup: bool = True

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_title: str = "TutorPay API"
    api_version: str = "0.1.0"
    api_description: str = "Payment and access reconciliation for paid video tutorials"

    # Public base URLs: web app pages and this API (processor callbacks)
    app_url: str = "http://localhost:3000"
    api_public_url: str = "http://localhost:8000"

    # Identity provider - HS256 signed bearer tokens
    identity_jwt_secret: str = ""
    identity_jwt_audience: str | None = None

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # json or console

    # Observability - Metrics
    metrics_enabled: bool = True

    # Observability - Tracing
    tracing_enabled: bool = True
    otlp_endpoint: str = "http://otel-collector:4317"
    otlp_insecure: bool = True
    service_name: str = "tutorpay-api"

    # Payment Processor - Paystack
    paystack_secret_key: str = ""  # sk_test_... or sk_live_...
    paystack_base_url: str = "https://api.paystack.co"
    processor_timeout_seconds: float = 8.0
    processor_connect_retries: int = 2

    # Subscriptions
    subscription_plan_code: str = ""  # PLN_...
    subscription_amount_minor: int = 10000

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @model_validator(mode="after")
    def validate_critical_config(self) -> "Settings":
        """
        FAIL FAST: Validate critical configuration at startup.

        Processor secrets are checked where they are used so the service can
        still serve access checks while payments are being configured.
        """
        errors: list[str] = []

        if not self.database_url:
            errors.append("DATABASE_URL is required but empty or missing")
        elif not self.database_url.startswith(("postgresql", "postgres")):
            errors.append(
                f"DATABASE_URL must be a PostgreSQL URL, got: {self.database_url[:20]}..."
            )

        if self.processor_timeout_seconds <= 0:
            errors.append("PROCESSOR_TIMEOUT_SECONDS must be positive")

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
    def read_database_url(self) -> str:
        """Get read database URL (fallback to primary if no replica)."""
        return self.database_read_url or self.database_url

    @property
    def payment_callback_url(self) -> str:
        """Redirect-verify endpoint the processor sends the buyer back to."""
        return f"{self.api_public_url.rstrip('/')}/payment/verify"

    @property
    def subscription_callback_url(self) -> str:
        """Where the buyer lands after completing a subscription checkout."""
        return f"{self.app_url.rstrip('/')}/dashboard?payment=subscription_success"


# Global settings instance - validates at import time
settings = Settings()


def get_settings() -> Settings:
    """Get application settings instance."""
    return settings
