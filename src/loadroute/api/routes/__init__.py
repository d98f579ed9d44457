"""Route group exports."""

from . import health, loads

__all__ = ["health", "loads"]
