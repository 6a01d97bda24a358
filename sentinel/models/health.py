from __future__ import annotations

from datetime import datetime, timezone
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


class HealthStatus(StrEnum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"
    UNKNOWN = "unknown"


# Severity order used for aggregation; UNKNOWN never outranks a real status.
STATUS_RANK: dict[HealthStatus, int] = {
    HealthStatus.UNKNOWN: -1,
    HealthStatus.HEALTHY: 0,
    HealthStatus.DEGRADED: 1,
    HealthStatus.UNHEALTHY: 2,
}

# Numeric gauge values mirrored into the metrics registry.
STATUS_GAUGE: dict[HealthStatus, int] = {
    HealthStatus.HEALTHY: 3,
    HealthStatus.DEGRADED: 2,
    HealthStatus.UNHEALTHY: 1,
    HealthStatus.UNKNOWN: 0,
}


class ComponentHealth(BaseModel):
    name: str
    status: HealthStatus
    message: str = ""
    details: dict[str, Any] = Field(default_factory=dict)
    checked_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )


class AppHealth(BaseModel):
    status: HealthStatus
    components: list[ComponentHealth] = Field(default_factory=list)
    checked_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    version: str = "1.0.0"
    uptime: int = 0  # seconds
