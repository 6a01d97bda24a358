from .alert import Alert, AlertInput, Severity, SEVERITY_RANK
from .health import AppHealth, ComponentHealth, HealthStatus, STATUS_GAUGE, STATUS_RANK
from .metrics import (
    CpuMetrics,
    DatabaseMetrics,
    DiskMetrics,
    MemoryMetrics,
    MetricsSnapshot,
    NetworkMetrics,
    ProcessMetrics,
)
from .security import (
    RequestSurface,
    RiskLevel,
    SecurityEvent,
    SecurityEventType,
    SecurityReport,
    SuspicionReport,
    SuspiciousIPRecord,
    ThreatAnalysis,
    ThreatType,
)

__all__ = [
    "Alert",
    "AlertInput",
    "Severity",
    "SEVERITY_RANK",
    "AppHealth",
    "ComponentHealth",
    "HealthStatus",
    "STATUS_GAUGE",
    "STATUS_RANK",
    "CpuMetrics",
    "DatabaseMetrics",
    "DiskMetrics",
    "MemoryMetrics",
    "MetricsSnapshot",
    "NetworkMetrics",
    "ProcessMetrics",
    "RequestSurface",
    "RiskLevel",
    "SecurityEvent",
    "SecurityEventType",
    "SecurityReport",
    "SuspicionReport",
    "SuspiciousIPRecord",
    "ThreatAnalysis",
    "ThreatType",
]
