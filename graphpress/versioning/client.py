"""
Git remote operations for Graphpress.

This module resolves branches on the remote and makes shallow, token
authenticated clones into temporary directories.
"""

import logging
import re
import shutil
import tempfile
from typing import List, Optional
from urllib.parse import quote, urlsplit, urlunsplit

from git import GitCommandError, Repo
from git.cmd import Git

from ..config import config
from ..errors import CloneError


# Never fall back to an interactive credential prompt
GIT_ENV = {"GIT_TERMINAL_PROMPT": "0", "GIT_ASKPASS": "echo"}

AUTH_PATTERNS = (
    "authentication failed",
    "could not read username",
    "could not read password",
    "terminal prompts disabled",
    "permission denied",
    "invalid username or password",
    "the requested url returned error: 401",
    "the requested url returned error: 403",
)

NOT_FOUND_PATTERNS = (
    "repository not found",
    "not found",
    "does not appear to be a git repository",
    "couldn't find remote ref",
    "remote branch",
    "does not exist",
    "the requested url returned error: 404",
)

SYMREF_RE = re.compile(r"^ref:\s+refs/heads/(\S+)\s+HEAD$", re.MULTILINE)


class GitClient:
    """
    Thin wrapper around the git command line (through GitPython).

    All methods block; callers in async code run them in a worker thread.
    """

    def __init__(self, clone_timeout: Optional[float] = None, ls_remote_timeout: Optional[float] = None,
                 max_output_bytes: Optional[int] = None, temp_prefix: Optional[str] = None):
        self.clone_timeout = clone_timeout or config.clone_timeout
        self.ls_remote_timeout = ls_remote_timeout or config.ls_remote_timeout
        self.max_output_bytes = max_output_bytes or config.git_max_output_bytes
        self.temp_prefix = temp_prefix or config.get("git.temp_prefix", "graphpress-")
        self._git = Git()

    @staticmethod
    def authenticated_url(repo_url: str, token: Optional[str]) -> str:
        """
        Embed an access token in an HTTPS URL.

        Other schemes (ssh, file) are returned unchanged.
        """
        if not token:
            return repo_url

        parts = urlsplit(repo_url)
        if parts.scheme != "https" or not parts.hostname:
            return repo_url

        host = parts.hostname
        if parts.port:
            host = f"{host}:{parts.port}"
        return urlunsplit(parts._replace(netloc=f"x-access-token:{quote(token, safe='')}@{host}"))

    @staticmethod
    def redact(text: str, token: Optional[str]) -> str:
        if not token:
            return text
        return text.replace(quote(token, safe=""), "***").replace(token, "***")

    def _diagnostics(self, error: GitCommandError, token: Optional[str]) -> str:
        stderr = error.stderr if isinstance(error.stderr, str) else str(error.stderr or "")
        return self.redact(stderr.strip()[:self.max_output_bytes], token)

    def _clone_error(self, error: GitCommandError, repo_url: str, branch: Optional[str],
                     token: Optional[str], timeout: float) -> CloneError:
        diagnostics = self._diagnostics(error, token)
        lowered = diagnostics.lower()
        target = self.redact(repo_url, token)

        if "timeout" in lowered or "did not complete" in lowered:
            return CloneError(f"Git operation on {target} timed out after {timeout:.0f}s", CloneError.TIMEOUT)

        if any(pattern in lowered for pattern in AUTH_PATTERNS):
            return CloneError(
                f"Authentication failed for {target}. Check that the deploy token is valid and that its "
                f"token permissions allow read access to repository contents. ({diagnostics})",
                CloneError.AUTH,
            )

        if any(pattern in lowered for pattern in NOT_FOUND_PATTERNS):
            what = f"branch '{branch}'" if branch else "repository"
            return CloneError(
                f"Repository or branch not found: {target} ({what}). ({diagnostics})",
                CloneError.NOT_FOUND,
            )

        return CloneError(f"Git operation on {target} failed: {diagnostics}", CloneError.OTHER)

    def _ls_remote(self, repo_url: str, token: Optional[str], options: List[str], patterns: List[str]) -> str:
        """Run ``git ls-remote <options> -- <url> <patterns>``."""
        url = self.authenticated_url(repo_url, token)
        try:
            return self._git.ls_remote(
                *options, "--", url, *patterns,
                kill_after_timeout=self.ls_remote_timeout,
                env=GIT_ENV,
            )
        except GitCommandError as e:
            raise self._clone_error(e, repo_url, None, token, self.ls_remote_timeout)

    def branch_exists(self, repo_url: str, branch: str, token: Optional[str] = None) -> bool:
        """Check whether ``refs/heads/<branch>`` exists on the remote."""
        wanted = f"refs/heads/{branch}"
        output = self._ls_remote(repo_url, token, ["--heads"], [wanted])
        for line in output.splitlines():
            parts = line.split()
            if len(parts) == 2 and parts[1] == wanted:
                return True
        return False

    def default_branch(self, repo_url: str, token: Optional[str] = None) -> Optional[str]:
        """Resolve the branch the remote HEAD points at, if any."""
        output = self._ls_remote(repo_url, token, ["--symref"], ["HEAD"])
        match = SYMREF_RE.search(output)
        return match.group(1) if match else None

    def clone(self, repo_url: str, branch: str, token: Optional[str] = None) -> str:
        """
        Shallow-clone one branch into a new temporary directory.

        Returns:
            Path of the checkout. The caller removes it with ``cleanup``.

        Raises:
            CloneError: On any failure; the temporary directory is removed
        """
        target = tempfile.mkdtemp(prefix=self.temp_prefix)
        url = self.authenticated_url(repo_url, token)
        logging.info(f"Cloning {self.redact(repo_url, token)} ({branch}) into {target}")

        try:
            self._git.clone(
                "--depth", "1", "--branch", branch, "--single-branch", "--", url, target,
                kill_after_timeout=self.clone_timeout,
                env=GIT_ENV,
            )
        except GitCommandError as e:
            self.cleanup(target)
            raise self._clone_error(e, repo_url, branch, token, self.clone_timeout)

        return target

    @staticmethod
    def head_commit(repo_path: str) -> str:
        """Commit hash checked out at ``repo_path``."""
        return Repo(repo_path).head.commit.hexsha

    @staticmethod
    def cleanup(repo_path: Optional[str]) -> None:
        if repo_path:
            shutil.rmtree(repo_path, ignore_errors=True)
