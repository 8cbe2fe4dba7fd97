"""Route group exports."""

from . import health, reconciliation

__all__ = ["health", "reconciliation"]
