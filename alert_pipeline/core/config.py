from typing import Literal, Optional

import pytz
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Database
    mongodb_url: str = Field(default="mongodb://localhost:27017", description="MongoDB connection URL")
    database_name: str = Field(default="alert_pipeline", min_length=1, description="MongoDB database name")
    mongodb_timeout_ms: int = Field(default=5000, gt=0, le=120000, description="Per-request MongoDB timeout")

    # Redis (celery broker / result backend)
    redis_url: str = "redis://localhost:6379/0"

    # Logging
    log_level: str = "INFO"
    log_json: bool = Field(default=True, description="Emit structured JSON log lines")

    # Metrics
    metrics_port: Optional[int] = Field(default=None, gt=0, lt=65536, description="Expose Prometheus metrics from workers")

    # Scheduled alert execution
    alerts_enabled: bool = Field(default=True, description="Run scheduled alert sweeps")
    alerts_timezone: str = Field(default="UTC", description="Timezone used for calendar recurrence")
    alerts_tick_interval_seconds: int = Field(default=300, gt=0, description="Seconds between execution ticks")
    alerts_cleanup_interval_seconds: int = Field(default=3600, gt=0, description="Seconds between expiry sweeps")
    alerts_tick_timeout_seconds: float = Field(default=240.0, gt=0, description="Work budget for one tick")
    alerts_live_alert_ttl_days: int = Field(default=14, gt=0, le=365, description="Days a published alert stays live")
    alerts_fanout_concurrency: int = Field(default=20, gt=0, le=1000, description="Concurrent deliveries per fan-out")
    alerts_max_catchup_occurrences: int = Field(
        default=1000, gt=0, description="Upper bound on occurrences skipped when rescheduling an overdue alert"
    )

    # Push gateway
    push_provider: Literal["dev", "http"] = "dev"
    push_endpoint_url: Optional[str] = None
    push_api_key: Optional[str] = None
    push_min_token_length: int = Field(default=100, ge=1, description="Shorter push tokens are treated as absent")

    # Email gateway
    email_provider: Literal["dev", "http"] = "dev"
    email_endpoint_url: Optional[str] = None
    email_api_key: Optional[str] = None
    email_from: str = "noreply@alerts.example"

    gateway_timeout_seconds: float = Field(default=10.0, gt=0, le=120, description="Per-request gateway timeout")

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    @field_validator("alerts_timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Reject timezones pytz does not know"""
        if v not in pytz.all_timezones_set:
            raise ValueError(f"Unknown timezone: {v}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid log level: {v}")
        return level


settings = Settings()
