"""
Error types for Graphpress.

Errors that end a whole sync attempt are recorded on both the deployment
and the repository record. Page-level problems only reach the build log.
"""

from typing import List, Optional


class GraphpressError(Exception):
    """Base class for all Graphpress errors."""


class ConfigurationError(GraphpressError):
    """A required setting is missing. Not retried."""


class CloneError(GraphpressError):
    """
    Cloning or resolving the remote repository failed.

    ``kind`` is one of ``auth``, ``not_found``, ``timeout`` or ``other``.
    """

    AUTH = "auth"
    NOT_FOUND = "not_found"
    TIMEOUT = "timeout"
    OTHER = "other"

    def __init__(self, message: str, kind: str = OTHER):
        super().__init__(message)
        self.kind = kind


class RenderError(GraphpressError):
    """The external renderer failed. Its raw output is kept for the build log."""

    def __init__(self, message: str, diagnostics: str = ""):
        super().__init__(message)
        self.diagnostics = diagnostics


class MatchError(GraphpressError):
    """No rendered document could be matched to a parsed page."""

    def __init__(self, page_name: str, reason: str):
        super().__init__(f"No rendered page for '{page_name}': {reason}")
        self.page_name = page_name
        self.reason = reason


class IngestionError(GraphpressError):
    """Unexpected failure while assembling the graph."""

    def __init__(self, message: str, build_log: Optional[List[str]] = None):
        super().__init__(message)
        self.build_log = list(build_log or [])


class CycleError(GraphpressError):
    """A parent/child cycle found during traversal. Logged, never raised to users."""

    def __init__(self, node_id: str, child_id: str):
        super().__init__(f"Cycle detected: {node_id} -> {child_id}")
        self.node_id = node_id
        self.child_id = child_id


class RepositoryAlreadyConnected(GraphpressError):
    """The workspace already has a connected repository."""


class RepositoryNotFound(GraphpressError):
    """No repository is connected for the workspace."""
