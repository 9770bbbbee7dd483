"""Repository synchronization."""

from .orchestrator import SyncOrchestrator
from .webhook import WebhookResponse, handle_push_event, verify_signature

__all__ = ["SyncOrchestrator", "WebhookResponse", "handle_push_event", "verify_signature"]
