"""
Application settings using Pydantic.

Provides environment-based configuration loading with BURNWATCH_ prefix.
Channel credentials live only in this object for the lifetime of the process.
"""

from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="BURNWATCH_",
        extra="ignore",
    )

    # Master switches
    enabled: bool = True
    alerting_enabled: bool = True
    cost_tracking_enabled: bool = True
    load_defaults: bool = False

    # Environment
    environment: str = "development"

    # Periodic ticks (seconds)
    slo_tick_interval: float = 300.0
    cost_tick_interval: float = 300.0
    alert_cleanup_interval: float = 3600.0

    # Retention
    cost_retention_days: int = 30
    budget_alert_retention_days: int = 30
    max_violations: int = 1000
    max_alert_history: int = 1000

    # Alerting
    high_cost_threshold: float = 10.0
    default_cooldown_minutes: int = 15

    # Slack
    slack_webhook_url: str | None = None
    slack_channel: str = "#alerts"
    slack_username: str = "burnwatch"

    # Email
    smtp_host: str | None = None
    smtp_port: int = 587
    smtp_username: str | None = None
    smtp_password: str | None = None
    smtp_use_tls: bool = True
    alert_email_from: str | None = None
    alert_email_to: list[str] = []

    # PagerDuty
    pagerduty_integration_key: str | None = None
    pagerduty_events_url: str = "https://events.pagerduty.com/v2/enqueue"

    # Generic webhook
    webhook_url: str | None = None

    # HTTP client settings
    http_timeout: float = 10.0
    circuit_failure_threshold: int = 5
    circuit_recovery_timeout: int = 60

    @field_validator(
        "slo_tick_interval",
        "cost_tick_interval",
        "alert_cleanup_interval",
        "http_timeout",
    )
    @classmethod
    def _positive_interval(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("must be positive")
        return value

    @field_validator("cost_retention_days", "budget_alert_retention_days", "max_violations", "max_alert_history")
    @classmethod
    def _at_least_one(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be at least 1")
        return value

    @field_validator("default_cooldown_minutes")
    @classmethod
    def _non_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("must not be negative")
        return value


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
