from __future__ import annotations

from datetime import datetime, timezone
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


class SecurityEventType(StrEnum):
    LOGIN_ATTEMPT = "LOGIN_ATTEMPT"
    LOGIN_SUCCESS = "LOGIN_SUCCESS"
    LOGIN_FAILURE = "LOGIN_FAILURE"
    LOGOUT = "LOGOUT"
    PASSWORD_CHANGE = "PASSWORD_CHANGE"
    MFA_ENABLED = "MFA_ENABLED"
    MFA_DISABLED = "MFA_DISABLED"
    ACCOUNT_LOCKED = "ACCOUNT_LOCKED"
    SUSPICIOUS_ACTIVITY = "SUSPICIOUS_ACTIVITY"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    CSRF_ATTEMPT = "CSRF_ATTEMPT"
    SQL_INJECTION_ATTEMPT = "SQL_INJECTION_ATTEMPT"
    XSS_ATTEMPT = "XSS_ATTEMPT"
    PATH_TRAVERSAL_ATTEMPT = "PATH_TRAVERSAL_ATTEMPT"
    COMMAND_INJECTION_ATTEMPT = "COMMAND_INJECTION_ATTEMPT"
    FILE_UPLOAD_ATTEMPT = "FILE_UPLOAD_ATTEMPT"
    ADMIN_ACTION = "ADMIN_ACTION"
    DATA_EXPORT = "DATA_EXPORT"
    DATA_DELETION = "DATA_DELETION"


class RiskLevel(StrEnum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class ThreatType(StrEnum):
    COMMAND_INJECTION = "COMMAND_INJECTION"
    SQL_INJECTION = "SQL_INJECTION"
    XSS = "XSS"
    PATH_TRAVERSAL = "PATH_TRAVERSAL"


class SecurityEvent(BaseModel):
    event_type: SecurityEventType
    details: dict[str, Any] = Field(default_factory=dict)
    risk_level: RiskLevel = RiskLevel.LOW
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )


class SuspiciousIPRecord(BaseModel):
    count: int = 0
    last_seen: float = 0.0  # monotonic seconds
    last_alert: float | None = None  # monotonic seconds of the last SUSPICIOUS_IP alert


class RequestSurface(BaseModel):
    """The parts of an inbound request scanned for attack signatures."""

    path: str = "/"
    query: dict[str, Any] = Field(default_factory=dict)
    body: Any = None
    headers: dict[str, str] = Field(default_factory=dict)
    ip: str | None = None


class ThreatAnalysis(BaseModel):
    is_threat: bool = False
    threat_type: ThreatType | None = None
    risk_level: RiskLevel = RiskLevel.LOW
    matches: list[str] = Field(default_factory=list)


class SuspicionReport(BaseModel):
    is_suspicious: bool = False
    patterns: list[str] = Field(default_factory=list)
    risk_score: int = 0


class SecurityReport(BaseModel):
    timeframe_hours: float
    generated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    total_events: int = 0
    unique_ips: int = 0
    unique_actors: int = 0
    event_breakdown: list[dict[str, Any]] = Field(default_factory=list)
    high_risk_events: list[dict[str, Any]] = Field(default_factory=list)
