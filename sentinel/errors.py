from __future__ import annotations


class SentinelError(Exception):
    """Base class for every error raised by the monitoring core."""


class ConfigurationError(SentinelError):
    """A required collaborator or setting is missing or invalid."""


class TransientIOError(SentinelError):
    """The key-value store or the durable event store could not be reached."""


class ValidationError(SentinelError):
    """An alert or security-event payload is malformed."""


class InternalLogicError(SentinelError):
    """Programmer error, e.g. a periodic task started re-entrantly."""
