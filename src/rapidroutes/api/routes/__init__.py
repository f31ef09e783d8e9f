"""Route group exports."""

from . import cities, health, pairs

__all__ = ["cities", "health", "pairs"]
