"""Git remote access for Graphpress."""

from .client import GitClient

__all__ = ["GitClient"]
