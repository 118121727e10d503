"""Route group exports."""

from . import allocations, complaints, health, sla

__all__ = ["allocations", "complaints", "health", "sla"]
