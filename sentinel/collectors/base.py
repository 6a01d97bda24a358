from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Callable, TypeVar

from pydantic import BaseModel

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BaseCollector(ABC):
    """Abstract base for the per-section metric samplers.

    Subclasses implement ``collect()`` which returns one frozen section of a
    ``MetricsSnapshot``. Scheduling is owned by the metrics registry.
    """

    name: str = "base"

    @abstractmethod
    async def collect(self) -> BaseModel:
        """Sample the OS and return this collector's snapshot section."""
        ...

    def _field(self, label: str, read: Callable[[], T], default: T) -> T:
        """Read a single field, falling back to ``default`` if the OS refuses."""
        try:
            return read()
        except Exception:
            logger.debug("Collector [%s] could not read %s", self.name, label, exc_info=True)
            return default
