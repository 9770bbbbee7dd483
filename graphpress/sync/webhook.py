"""
Handling of repository push notifications.
"""

import asyncio
import hashlib
import hmac
import logging
from typing import Any, Dict, Optional

from pydantic import BaseModel

from ..database import DatabaseManager
from .orchestrator import SyncOrchestrator


class WebhookResponse(BaseModel):
    status_code: int
    message: str


def verify_signature(body: bytes, signature: Optional[str], secret: str) -> bool:
    """Check an ``X-Hub-Signature-256`` header (``sha256=<hex hmac>``)."""
    if not signature:
        return False
    digest = "sha256=" + hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(digest, signature.strip())


async def handle_push_event(orchestrator: SyncOrchestrator, store: DatabaseManager,
                            event: Optional[str], payload: Dict[str, Any], body: bytes = b"",
                            signature: Optional[str] = None,
                            secret: Optional[str] = None) -> WebhookResponse:
    """
    Handle one webhook delivery.

    Args:
        orchestrator: Orchestrator that runs the sync
        store: Store used to find the repository
        event: Value of the ``X-GitHub-Event`` header
        payload: Decoded JSON body
        body: Raw body, needed for signature verification
        signature: Value of the ``X-Hub-Signature-256`` header
        secret: Shared webhook secret; signatures are not checked when None

    Returns:
        WebhookResponse with an HTTP status code
    """
    if secret and not verify_signature(body, signature, secret):
        logging.warning("Webhook rejected: invalid signature")
        return WebhookResponse(status_code=401, message="Invalid signature")

    if event != "push":
        return WebhookResponse(status_code=200, message="Event ignored")

    repository_info = payload.get("repository") or {}
    repo_url = repository_info.get("clone_url") or repository_info.get("html_url")
    ref = payload.get("ref") or ""
    branch = ref[len("refs/heads/"):] if ref.startswith("refs/heads/") else ref

    if not repo_url or not branch:
        return WebhookResponse(status_code=400, message="Invalid webhook payload")

    repository = await asyncio.to_thread(store.get_repository_by_url, repo_url)
    if repository is None:
        logging.info(f"Webhook for unknown repository {repo_url}")
        return WebhookResponse(status_code=404, message="Repository not found")

    if repository.branch != branch:
        return WebhookResponse(status_code=200, message="Branch mismatch, ignoring")

    task = await orchestrator.trigger_sync(repository.workspace_id, reason="push")
    if task is None:
        return WebhookResponse(status_code=409, message="Sync already in progress")

    return WebhookResponse(status_code=202, message="Deployment triggered")
