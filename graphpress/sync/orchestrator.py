"""
Sync orchestrator for Graphpress.

One sync clones the connected repository, ingests it and records the outcome
on a Deployment and on the repository itself:

    idle -> syncing -> success | error,  success | error -> syncing
"""

import asyncio
import logging
from datetime import datetime
from typing import List, Optional, Set

from ..config import config
from ..database import DatabaseManager
from ..errors import CloneError, IngestionError, RenderError, RepositoryNotFound
from ..ingestion import IngestionEngine
from ..models import DeploymentStatus, GitRepository, SyncResult, SyncStatus
from ..versioning import GitClient


class SyncOrchestrator:
    """
    Drives syncs for every workspace sharing one content store.
    """

    def __init__(self, store: DatabaseManager, engine: IngestionEngine,
                 git_client: Optional[GitClient] = None,
                 serialize_triggers: Optional[bool] = None):
        """
        Initialize the orchestrator.

        Args:
            store: Content store holding repositories and deployments
            engine: Ingestion engine used for each checkout
            git_client: Remote git access
            serialize_triggers: Reject a trigger while the workspace is
                already syncing (defaults to ``sync.serialize_triggers``)
        """
        self.store = store
        self.engine = engine
        self.git = git_client or GitClient()
        self.serialize_triggers = config.serialize_triggers if serialize_triggers is None else serialize_triggers
        self._tasks: Set[asyncio.Task] = set()

    async def connect_repository(self, workspace_id: str, repo_url: str, branch: str = "main",
                                 deploy_key: Optional[str] = None) -> GitRepository:
        """
        Connect a repository to a workspace.

        The initial sync starts in the background when a deploy key is given.

        Raises:
            RepositoryAlreadyConnected: If the workspace already has a repository
        """
        repository = await asyncio.to_thread(
            self.store.create_repository,
            GitRepository(
                workspace_id=workspace_id,
                repo_url=repo_url,
                branch=branch or "main",
                deploy_key=deploy_key,
                sync_status=SyncStatus.IDLE,
            ),
        )
        logging.info(f"Connected {repo_url} ({repository.branch}) to workspace {workspace_id}")

        if deploy_key:
            await self.trigger_sync(workspace_id, reason="initial connection")

        return repository

    async def trigger_sync(self, workspace_id: str, reason: str = "manual") -> Optional[asyncio.Task]:
        """
        Start a sync in the background and return without waiting for it.

        Returns:
            The running task, or None when a sync for the workspace is already
            in progress and triggers are serialized
        """
        claimed = False
        if self.serialize_triggers:
            claimed = await asyncio.to_thread(self.store.try_begin_sync, workspace_id)
            if not claimed:
                logging.warning(f"Sync for workspace {workspace_id} already running; {reason} trigger rejected")
                return None

        logging.info(f"Sync triggered for workspace {workspace_id} ({reason})")
        task = asyncio.create_task(self._run_sync(workspace_id, claimed))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait_for_syncs(self) -> List[SyncResult]:
        """Wait for every background sync started by this orchestrator."""
        if not self._tasks:
            return []
        return list(await asyncio.gather(*self._tasks))

    async def _run_sync(self, workspace_id: str, claimed: bool) -> SyncResult:
        try:
            return await self.sync_repository(workspace_id, claimed=claimed)
        except Exception as e:
            logging.error(f"Sync of workspace {workspace_id} failed unexpectedly: {e}")
            await asyncio.to_thread(
                self.store.update_repository, workspace_id,
                sync_status=SyncStatus.ERROR, error_log=str(e),
            )
            return SyncResult(success=False, workspace_id=workspace_id, error=str(e))

    async def _resolve_branch(self, repository: GitRepository, build_log: List[str]) -> str:
        """Return the configured branch, or the remote default when it is gone."""
        url, token, branch = repository.repo_url, repository.deploy_key, repository.branch

        if await asyncio.to_thread(self.git.branch_exists, url, branch, token):
            return branch

        default = await asyncio.to_thread(self.git.default_branch, url, token)
        if not default or default == branch:
            raise CloneError(
                f"Repository or branch not found: branch '{branch}' does not exist and "
                f"no default branch could be resolved",
                CloneError.NOT_FOUND,
            )

        message = f"Branch '{branch}' not found, falling back to default branch '{default}'"
        logging.warning(message)
        build_log.append(message)
        return default

    async def sync_repository(self, workspace_id: str, claimed: bool = False) -> SyncResult:
        """
        Run one sync to completion.

        Args:
            workspace_id: Workspace to sync
            claimed: The caller already moved the repository to ``syncing``

        Returns:
            SyncResult describing the outcome; failures are reported here and
            on the stored records rather than raised
        """
        repository = await asyncio.to_thread(self.store.get_repository, workspace_id)
        if repository is None:
            raise RepositoryNotFound(f"No repository connected for workspace {workspace_id}")

        if not claimed:
            await asyncio.to_thread(
                self.store.update_repository, workspace_id,
                sync_status=SyncStatus.SYNCING, error_log=None,
            )

        build_log: List[str] = []
        repo_path: Optional[str] = None

        try:
            try:
                branch = await self._resolve_branch(repository, build_log)
                repo_path = await asyncio.to_thread(
                    self.git.clone, repository.repo_url, branch, repository.deploy_key
                )
                commit_sha = await asyncio.to_thread(self.git.head_commit, repo_path)
            except CloneError as e:
                logging.error(f"Clone failed for workspace {workspace_id}: {e}")
                await asyncio.to_thread(
                    self.store.update_repository, workspace_id,
                    sync_status=SyncStatus.ERROR, error_log=str(e),
                )
                return SyncResult(success=False, workspace_id=workspace_id,
                                  branch=repository.branch, error=str(e))

            build_log.append(f"Checked out {branch} at {commit_sha}")
            deployment = await asyncio.to_thread(
                self.store.create_deployment, workspace_id, commit_sha, DeploymentStatus.BUILDING, branch
            )

            try:
                await self.engine.ingest(workspace_id, repo_path, build_log=build_log)
            except (RenderError, IngestionError) as e:
                logging.error(f"Ingestion failed for workspace {workspace_id}: {e}")
                await asyncio.to_thread(
                    self.store.update_deployment, deployment.id,
                    status=DeploymentStatus.FAILED, error_log=str(e), build_log=build_log,
                )
                await asyncio.to_thread(
                    self.store.update_repository, workspace_id,
                    sync_status=SyncStatus.ERROR, error_log=str(e),
                )
                return SyncResult(success=False, workspace_id=workspace_id, commit_sha=commit_sha,
                                  branch=branch, deployment_id=deployment.id, error=str(e))

            await asyncio.to_thread(
                self.store.update_deployment, deployment.id,
                status=DeploymentStatus.SUCCESS, build_log=build_log,
            )
            await asyncio.to_thread(
                self.store.update_repository, workspace_id,
                sync_status=SyncStatus.SUCCESS, last_sync=datetime.now(),
                error_log=None, branch=branch,
            )
            logging.info(f"Sync of workspace {workspace_id} finished at {commit_sha[:8]}")
            return SyncResult(success=True, workspace_id=workspace_id, commit_sha=commit_sha,
                              branch=branch, deployment_id=deployment.id)

        finally:
            self.git.cleanup(repo_path)
