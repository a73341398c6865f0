"""Git metadata used to tag images and annotate build records.

Shells out to the ``git`` executable; no repository means no metadata.
"""

import subprocess
from pathlib import Path

import structlog

from dockertool.exceptions import ConfigurationError

logger = structlog.stdlib.get_logger(__name__)

SHORT_COMMIT_LENGTH = 7


class GitRepository:
    def __init__(self, root: Path):
        self.root = root

    @classmethod
    def discover(cls, path: str | Path | None = None) -> "GitRepository | None":
        """Find the repository containing ``path`` (default: the cwd).

        Returns None when the directory is not inside a git work tree or
        git is not installed.
        """
        cwd = Path(path) if path else Path.cwd()
        try:
            result = subprocess.run(
                ["git", "rev-parse", "--show-toplevel"],
                cwd=cwd,
                capture_output=True,
                text=True,
                check=False,
            )
        except OSError as e:
            logger.debug("git executable not available", error=str(e))
            return None

        if result.returncode != 0:
            return None
        return cls(Path(result.stdout.strip()))

    def _git(self, *args: str) -> str | None:
        result = subprocess.run(
            ["git", *args],
            cwd=self.root,
            capture_output=True,
            text=True,
            check=False,
        )
        if result.returncode != 0:
            return None
        return result.stdout.strip()

    def remote_url(self, remote: str = "origin") -> str | None:
        return self._git("config", "--get", f"remote.{remote}.url") or None

    def head_commit(self) -> str | None:
        return self._git("rev-parse", "--verify", "-q", "HEAD") or None

    def is_dirty(self) -> bool:
        status = self._git("status", "--porcelain", "--untracked-files=no")
        return bool(status)

    def tags_at_head(self) -> list[str]:
        tags = self._git("tag", "--points-at", "HEAD")
        return tags.splitlines() if tags else []

    def short_commit_id(self) -> str | None:
        """Short tag-friendly id: ``abc1234[.<git tag>][.DIRTY]``.

        The first git tag pointing at HEAD is appended, then ``.DIRTY``
        when tracked files have uncommitted changes. Returns None for a
        repository without commits.
        """
        head = self.head_commit()
        if not head:
            return None

        result = head[:SHORT_COMMIT_LENGTH]
        tags = self.tags_at_head()
        if tags:
            result += f".{tags[0]}"
        if self.is_dirty():
            result += ".DIRTY"
        return result


def get_commit_id(path: str | Path | None = None) -> str:
    """Short commit id of the repository around ``path``.

    Raises:
        ConfigurationError: not a git repository, or it has no commits
    """
    repo = GitRepository.discover(path)
    if repo is None:
        raise ConfigurationError(
            "Cannot tag with git commit ID because directory not a git repo"
        )
    commit_id = repo.short_commit_id()
    if commit_id is None:
        raise ConfigurationError(
            "Cannot tag with git commit ID because the repository has no commits"
        )
    return commit_id
