"""Content store for Graphpress."""

from .manager import DatabaseManager

__all__ = ["DatabaseManager"]
