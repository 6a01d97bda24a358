from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


class Severity(StrEnum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return SEVERITY_RANK[self]


SEVERITY_RANK: dict[Severity, int] = {
    Severity.INFO: 0,
    Severity.WARNING: 1,
    Severity.ERROR: 2,
    Severity.CRITICAL: 3,
}


class AlertInput(BaseModel):
    """Caller-supplied alert payload; also used as a rule's alert template."""

    title: str = Field(min_length=1)
    message: str = Field(min_length=1)
    severity: Severity
    source: str = "manual"
    tags: dict[str, str] = Field(default_factory=dict)
    data: dict[str, Any] | None = None


class Alert(AlertInput):
    """An alert as recorded in history. Only acknowledgement fields change."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex[:12])
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    acknowledged: bool = False
    acknowledged_by: str | None = None
    acknowledged_at: datetime | None = None
