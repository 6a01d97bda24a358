"""Observability and adaptive-defense core for the ChainSync POS backend."""

__version__ = "1.0.0"
