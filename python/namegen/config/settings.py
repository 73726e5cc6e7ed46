"""
Configuration management using Pydantic Settings.
Environment-based configuration with an explicit reload for hot changes.
"""
import logging
from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Coordinator settings with validation and environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="NAMEGEN_",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="Namegen", description="Application name")
    environment: str = Field(default="development", description="Environment: development, staging, production")

    # Models
    default_model: str = Field(default="gpt-4", description="Model used when a request names none")
    fallback_model: str = Field(default="gpt-3.5-turbo", description="Model used when the default is unavailable")
    max_names_per_model: int = Field(default=10, ge=1, le=50, description="Cap on candidates returned per model")

    # Usage limits
    max_generations_per_hour: int = Field(default=50, ge=0, description="Per-user sessions per rolling hour")
    max_generations_per_day: int = Field(default=200, ge=0, description="Per-user sessions per rolling day")

    # Dispatch
    dispatch_mode: str = Field(default="sequential", description="sequential or concurrent")
    session_timeout_seconds: float = Field(default=120.0, gt=0, description="Global fan-in timeout per session")
    poll_interval_seconds: float = Field(default=2.0, gt=0, description="Fan-in observation interval")
    adapter_timeout_seconds: float = Field(default=30.0, gt=0, description="Fallback per-adapter call timeout")
    retry_attempts: int = Field(default=3, ge=1, le=10, description="Max attempts per adapter call")
    retry_backoff_min_seconds: float = Field(default=1.0, ge=0, description="Minimum retry backoff")
    retry_backoff_max_seconds: float = Field(default=10.0, ge=0, description="Maximum retry backoff")

    # Caching
    enable_caching: bool = Field(default=True, description="Memoize provider responses")
    response_cache_ttl_seconds: int = Field(default=3600, ge=0, description="Provider response memoization TTL")
    registry_ttl_seconds: int = Field(default=300, ge=0, description="Model status cache TTL")
    reporter_snapshot_ttl_seconds: int = Field(default=60, ge=0, description="Real-time stats TTL")
    reporter_error_rate_ttl_seconds: int = Field(default=300, ge=0, description="Success rate / response time TTL")
    reporter_model_health_ttl_seconds: int = Field(default=600, ge=0, description="Model health TTL")

    # System status
    maintenance_mode: bool = Field(default=False, description="Put every model in maintenance")

    # Cost tracking
    daily_budget_limit: float = Field(default=100.0, ge=0, description="System spend limit per day (USD)")
    monthly_budget_limit: float = Field(default=2000.0, ge=0, description="System spend limit per month (USD)")
    alert_threshold_percentage: int = Field(default=80, ge=1, le=100, description="Budget alert threshold")
    usage_retention_days: int = Field(default=90, ge=1, description="Usage log retention")

    # Model health classification
    health_healthy_threshold: float = Field(default=0.95, ge=0.0, le=1.0, description="Success rate for healthy")
    health_degraded_threshold: float = Field(default=0.80, ge=0.0, le=1.0, description="Success rate for degraded")
    health_window_minutes: int = Field(default=60, ge=1, description="Window for model health")

    # Provider credentials
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API key")
    anthropic_api_key: Optional[str] = Field(default=None, description="Anthropic API key")
    google_api_key: Optional[str] = Field(default=None, description="Google AI API key")
    xai_api_key: Optional[str] = Field(default=None, description="xAI API key")

    # Provider endpoints
    openai_base_url: str = Field(default="https://api.openai.com/v1", description="OpenAI base URL")
    anthropic_base_url: str = Field(default="https://api.anthropic.com/v1", description="Anthropic base URL")
    anthropic_version: str = Field(default="2023-06-01", description="Anthropic API version header")
    google_base_url: str = Field(default="https://generativelanguage.googleapis.com/v1beta", description="Gemini base URL")
    xai_base_url: str = Field(default="https://api.x.ai/v1", description="xAI base URL")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="json", description="Log format: json or text")

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        allowed = ["development", "staging", "production", "test"]
        if v not in allowed:
            raise ValueError(f"Environment must be one of {allowed}")
        return v

    @field_validator("dispatch_mode")
    @classmethod
    def validate_dispatch_mode(cls, v: str) -> str:
        allowed = ["sequential", "concurrent"]
        v_lower = v.lower()
        if v_lower not in allowed:
            raise ValueError(f"Dispatch mode must be one of {allowed}")
        return v_lower

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in allowed:
            raise ValueError(f"Log level must be one of {allowed}")
        return v_upper

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        allowed = ["json", "text"]
        if v not in allowed:
            raise ValueError(f"Log format must be one of {allowed}")
        return v

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def get_log_level(self) -> int:
        """Get logging level as integer."""
        return getattr(logging, self.log_level)

    def api_key_for(self, provider: str) -> Optional[str]:
        """Credential for a provider family, or None."""
        return {
            "openai": self.openai_api_key,
            "anthropic": self.anthropic_api_key,
            "google": self.google_api_key,
            "xai": self.xai_api_key,
        }.get(provider)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings: Application settings
    """
    return Settings()


def reload_settings() -> Settings:
    """Drop the cached settings and re-read the environment."""
    get_settings.cache_clear()
    settings = get_settings()
    logging.getLogger(__name__).info(
        "Settings reloaded (dispatch_mode=%s, maintenance_mode=%s)",
        settings.dispatch_mode, settings.maintenance_mode,
    )
    return settings
