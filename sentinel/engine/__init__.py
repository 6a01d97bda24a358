from .periodic import PeriodicTask
from .alert_dispatcher import AlertDispatcher, AlertRule
from .metrics_registry import MetricsRegistry
from .health_aggregator import HealthAggregator
from .rate_limiter import RateLimiter
from .intrusion_detector import IntrusionDetector

__all__ = [
    "PeriodicTask",
    "AlertDispatcher",
    "AlertRule",
    "MetricsRegistry",
    "HealthAggregator",
    "RateLimiter",
    "IntrusionDetector",
]
