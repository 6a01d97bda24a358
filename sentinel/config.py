from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, model_validator
from pydantic_settings import BaseSettings

from sentinel.errors import ConfigurationError
from sentinel.models.alert import Severity

BASE_DIR = Path(__file__).resolve().parent


class ThresholdPair(BaseModel):
    warning: float
    critical: float

    @model_validator(mode="after")
    def _ordered(self) -> "ThresholdPair":
        if self.warning > self.critical:
            raise ValueError(
                f"warning threshold {self.warning} exceeds critical threshold {self.critical}"
            )
        return self


class MetricThresholds(BaseModel):
    cpu: ThresholdPair = ThresholdPair(warning=80, critical=90)
    memory: ThresholdPair = ThresholdPair(warning=80, critical=90)
    disk: ThresholdPair = ThresholdPair(warning=80, critical=90)
    query_time: ThresholdPair = ThresholdPair(warning=1000, critical=3000)  # ms


class AlertSettings(BaseModel):
    min_severity: Severity = Severity.WARNING
    channels: list[str] = ["log"]
    webhook_url: str | None = None
    chat_webhook_url: str | None = None
    email_recipients: list[str] = []
    sms_recipients: list[str] = []
    history_size: int = Field(default=100, ge=1)
    rule_interval: float = Field(default=60.0, gt=0)  # seconds between rule evaluations
    request_timeout: float = Field(default=5.0, gt=0)


class RateLimiterSettings(BaseModel):
    window: int = Field(default=60, gt=0)  # seconds
    max_requests: int = Field(default=60, gt=0)
    key_prefix: str = "ratelimit:"


class IntrusionSettings(BaseModel):
    suspicious_ip_threshold: int = Field(default=3, ge=1)
    suspicious_ip_ttl: float = Field(default=3600.0, gt=0)  # seconds of inactivity before a record is evicted
    cleanup_interval: float = Field(default=300.0, gt=0)
    activity_window: float = Field(default=3600.0, gt=0)
    alert_cooldown: float = Field(default=0.0, ge=0)  # seconds between SUSPICIOUS_IP alerts per IP; 0 repeats every event


class Settings(BaseSettings):
    # --- app ---
    app_name: str = "ChainSync Sentinel"
    version: str = "1.0.0"
    log_level: str = "INFO"

    # --- stores ---
    db_path: str = str(BASE_DIR / "db" / "security.db")
    redis_url: str | None = "redis://localhost:6379/0"

    # --- sampling ---
    metrics_interval: float = Field(default=15.0, gt=0)
    health_interval: float = Field(default=60.0, gt=0)
    cpu_probe_seconds: float = Field(default=0.1, gt=0)
    disk_path: str = "/"

    thresholds: MetricThresholds = MetricThresholds()
    alert: AlertSettings = AlertSettings()
    rate_limiter: RateLimiterSettings = RateLimiterSettings()
    intrusion: IntrusionSettings = IntrusionSettings()

    # --- server ---
    host: str = "0.0.0.0"
    port: int = 8000

    model_config = {
        "env_file": ".env",
        "env_prefix": "SENTINEL_",
        "env_nested_delimiter": "__",
    }


def load_settings(**overrides) -> Settings:
    """Build and validate settings once, at startup."""
    try:
        return Settings(**overrides)
    except PydanticValidationError as exc:
        raise ConfigurationError(f"invalid configuration: {exc}") from exc
