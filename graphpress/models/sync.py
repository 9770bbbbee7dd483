"""
Repository and deployment models for Graphpress.
"""

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field


class SyncStatus:
    """Values of ``GitRepository.sync_status``."""

    IDLE = "idle"
    SYNCING = "syncing"
    SUCCESS = "success"
    ERROR = "error"

    ALL = (IDLE, SYNCING, SUCCESS, ERROR)


class DeploymentStatus:
    """Values of ``Deployment.status``."""

    BUILDING = "building"
    SUCCESS = "success"
    FAILED = "failed"


class GitRepository(BaseModel):
    """
    The repository connected to a workspace. One per workspace.
    """

    workspace_id: str
    repo_url: str
    branch: str = "main"
    deploy_key: Optional[str] = Field(None, description="Access token used for HTTPS clones")
    sync_status: str = SyncStatus.IDLE
    last_sync: Optional[datetime] = None
    error_log: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Deployment(BaseModel):
    """
    Audit record of one sync attempt. Immutable once finalized.
    """

    id: Optional[int] = Field(None, description="Primary key (auto-increment in database)")
    workspace_id: str
    commit_sha: str
    branch: Optional[str] = None
    status: str = DeploymentStatus.BUILDING
    deployed_at: Optional[datetime] = None
    error_log: Optional[str] = None
    build_log: List[str] = Field(default_factory=list)


class SyncResult(BaseModel):
    """Outcome of one sync attempt, returned to the caller."""

    success: bool
    workspace_id: str
    commit_sha: Optional[str] = None
    branch: Optional[str] = None
    deployment_id: Optional[int] = None
    error: Optional[str] = None


class IngestionResult(BaseModel):
    """Summary of one ingestion run."""

    page_count: int = 0
    block_count: int = 0
    skipped_pages: List[str] = Field(default_factory=list)
    build_log: List[str] = Field(default_factory=list)
