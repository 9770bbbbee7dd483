"""
Base importer interface for Graphpress.

This module defines the abstract interface that all graph importers must implement.
"""

from abc import ABC, abstractmethod
from typing import List

from ..models import ParsedPage


class BaseImporter(ABC):
    """
    Abstract base class for all graph importers.

    Each importer converts a checked-out note graph into ParsedPage objects,
    one per page, with the block hierarchy preserved.
    """

    @abstractmethod
    def get_all_pages(self) -> List[ParsedPage]:
        """
        Retrieve all pages from the data source.

        Returns:
            List of ParsedPage objects in a stable order
        """
        pass
