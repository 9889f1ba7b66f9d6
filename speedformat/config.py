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

    # Upper bound for a single Identity Store call made by the auth pipeline
    store_timeout_seconds: float = 5.0

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_title: str = "Speed Formatter API"
    api_version: str = "0.1.0"
    api_description: str = "Code formatting with account, API key and quota gating"
    environment: str = "production"  # production or development

    # Bearer tokens (generate with: openssl rand -hex 32)
    JWT_SECRET: str = ""
    jwt_algorithm: str = "HS256"
    jwt_expire_days: int = 7

    # API keys
    api_key_prefix: str = "sf_"
    max_api_keys_per_account: int = 10

    # Admin bootstrap - first registration with this email gets the admin role
    bootstrap_admin_email: str | None = None

    # Monthly request ceilings per plan
    plan_limit_free: int = 100
    plan_limit_basic: int = 5000
    plan_limit_pro: int = 50000
    plan_limit_team: int = 500000

    # Public endpoint rate limits (/format)
    public_rate_window_seconds: int = 15 * 60
    public_rate_anonymous: int = 10
    public_rate_free: int = 50
    public_rate_paid: int = 200

    # API endpoint rate limits (/api/v1/format)
    api_rate_window_seconds: int = 60
    api_rate_free: int = 10
    api_rate_basic: int = 100
    api_rate_pro: int = 1000
    api_rate_team: int = 10000

    # Coarse per-IP guard applied before identity resolution
    ip_guard_window_seconds: int = 60
    ip_guard_ceiling: int = 600

    # Peers allowed to set X-Forwarded-For (comma-separated IPs). Empty = trust nobody.
    trusted_proxy_ips: str = ""

    # Quota mode: False = optimistic check then increment, True = atomic conditional increment
    quota_strict_mode: bool = False

    # Formatter
    prettier_bin: str = "prettier"
    formatter_timeout_seconds: float = 10.0
    max_code_length: int = 1_000_000
    benchmark_iterations: int = 10

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # json or console

    # Observability - Metrics
    metrics_enabled: bool = True

    # Observability - Tracing
    tracing_enabled: bool = True
    otlp_endpoint: str = "http://otel-collector:4317"
    otlp_insecure: bool = True
    service_name: str = "speed-formatter-api"

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

        # DATABASE_URL is absolutely required
        if not self.database_url:
            errors.append("DATABASE_URL is required but empty or missing")
        elif not self.database_url.startswith(("postgresql", "postgres")):
            errors.append(
                f"DATABASE_URL must be a PostgreSQL URL, got: {self.database_url[:20]}..."
            )

        if not self.JWT_SECRET:
            errors.append("JWT_SECRET is required but empty or missing")
        elif len(self.JWT_SECRET) < 32:
            errors.append("JWT_SECRET must be at least 32 characters")

        if len(self.api_key_prefix) != 3:
            errors.append(f"API_KEY_PREFIX must be 3 characters, got: {self.api_key_prefix!r}")

        public = [self.public_rate_anonymous, self.public_rate_free, self.public_rate_paid]
        if public != sorted(public):
            errors.append("Public rate ceilings must satisfy anonymous <= free <= paid")

        api = [self.api_rate_free, self.api_rate_basic, self.api_rate_pro, self.api_rate_team]
        if api != sorted(api):
            errors.append("API rate ceilings must satisfy free <= basic <= pro <= team")

        # If we have errors, fail immediately with clear messaging
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
    def trusted_proxies(self) -> frozenset[str]:
        """Peer addresses whose X-Forwarded-For header is believed."""
        return frozenset(ip.strip() for ip in self.trusted_proxy_ips.split(",") if ip.strip())

    @property
    def is_development(self) -> bool:
        """Whether internal error details may be exposed in responses."""
        return self.environment == "development"


# Global settings instance - validates at import time
settings = Settings()


def get_settings() -> Settings:
    """Get application settings instance."""
    return settings
