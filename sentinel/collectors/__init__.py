from .base import BaseCollector
from .cpu_collector import CpuCollector
from .database_collector import DatabaseCollector
from .disk_collector import DiskCollector
from .memory_collector import MemoryCollector
from .network_collector import NetworkCollector
from .process_collector import ProcessCollector

__all__ = [
    "BaseCollector",
    "CpuCollector",
    "DatabaseCollector",
    "DiskCollector",
    "MemoryCollector",
    "NetworkCollector",
    "ProcessCollector",
]
