# src/sources/git_storage.py — v1
"""Module source backed by a remote git repository, driven through the git CLI.

The repository is mirrored once into the cache directory as a bare clone;
each release that is read gets its own detached worktree.
"""

from __future__ import annotations

import hashlib
import logging
import subprocess
from pathlib import Path

from infralib_agent.core.errors import SourceError
from infralib_agent.core.versions import Release, is_version
from infralib_agent.sources.storage import DirectorySourceStorage

logger = logging.getLogger(__name__)


class GitCommandError(SourceError):
    """Raised when a git command fails."""

    def __init__(self, command: list[str], exit_code: int, stderr: str) -> None:
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr
        super().__init__(
            f"Git command {' '.join(command)} failed with code {exit_code}: {stderr}"
        )


class GitSourceStorage(DirectorySourceStorage):
    """Wraps ``git`` CLI commands for cloning, tag listing and checkouts."""

    def __init__(self, url: str, cache_dir: str | Path, git_binary: str = "git") -> None:
        self.url = url
        self.git_binary = git_binary
        key = hashlib.sha256(url.encode("utf-8")).hexdigest()[:16]
        base = Path(cache_dir).expanduser() / key
        self._repo_dir = base / "repo.git"
        self._worktrees = base / "releases"
        self._synced = False

    async def list_releases(self) -> list[Release]:
        self._sync()
        output = self._run(["tag", "--list"])
        releases: list[Release] = []
        invalid: list[str] = []
        for tag in output.split():
            if is_version(tag):
                releases.append(Release.parse(tag))
            else:
                invalid.append(tag)
        if invalid:
            logger.debug("Tags are not valid versions: %s", ", ".join(invalid))
        return sorted(releases)

    async def release_dir(self, release: str) -> Path:
        self._sync()
        target = self._worktrees / release
        if not target.is_dir():
            self._worktrees.mkdir(parents=True, exist_ok=True)
            self._run(["worktree", "add", "--force", "--detach", str(target), release])
        return target

    def _sync(self) -> None:
        if self._synced:
            return
        if self._repo_dir.is_dir():
            logger.info("Fetching repository %s", self.url)
            self._run(["fetch", "--tags", "--force", "--prune", "origin"])
        else:
            logger.info("Cloning repository %s", self.url)
            self._repo_dir.parent.mkdir(parents=True, exist_ok=True)
            self._run(["clone", "--bare", self.url, str(self._repo_dir)], bare=False)
        self._synced = True

    def _run(self, args: list[str], bare: bool = True) -> str:
        command = [self.git_binary]
        if bare:
            command += ["--git-dir", str(self._repo_dir)]
        command += args
        process = subprocess.run(
            command,
            capture_output=True,
            text=True,
            check=False,
        )
        if process.returncode != 0:
            raise GitCommandError(command, process.returncode, process.stderr.strip())
        return process.stdout
