import re
import subprocess
from pathlib import Path

from loguru import logger

from codebase_kb.core.errors import RevisionUnresolvedError
from codebase_kb.core.models import ChangeSet

_SHA = re.compile(r"^[0-9a-f]{40}$")


class GitRepositoryState:
    """Reads revision and change information from a git working tree."""

    def __init__(self, git_binary: str = "git", timeout: float = 30.0) -> None:
        self.git_binary = git_binary
        self.timeout = timeout

    def resolve_revision(self, repo_root: Path) -> str:
        try:
            sha = self._run(repo_root, "rev-parse", "HEAD")
        except (OSError, subprocess.SubprocessError) as e:
            raise RevisionUnresolvedError(f"Cannot resolve HEAD in {repo_root}: {e}") from e

        if not _SHA.match(sha):
            raise RevisionUnresolvedError(f"Unexpected revision '{sha}' in {repo_root}")
        return sha

    def ensure_valid(self, repo_root: Path) -> None:
        self.resolve_revision(repo_root)

    def current_branch(self, repo_root: Path) -> str | None:
        try:
            branch = self._run(repo_root, "rev-parse", "--abbrev-ref", "HEAD")
        except (OSError, subprocess.SubprocessError) as e:
            logger.debug("No branch for {}: {}", repo_root, e)
            return None
        return None if branch in ("", "HEAD") else branch

    def changed_files(self, repo_root: Path, from_revision: str, to_revision: str) -> ChangeSet:
        """Parses ``git diff --name-status``.

        A rename deletes the old path and adds the new one. A copy only adds
        the new path since the source is still in the tree.
        """
        output = self._run(repo_root, "diff", "--name-status", from_revision, to_revision)
        changes = ChangeSet()

        for line in output.splitlines():
            parts = line.split("\t")
            if len(parts) < 2 or not parts[0]:
                continue
            status, path = parts[0][0], parts[-1]
            if status in ("A", "C"):
                changes.added.append(path)
            elif status in ("M", "T"):
                changes.modified.append(path)
            elif status == "D":
                changes.deleted.append(path)
            elif status == "R" and len(parts) >= 3:
                changes.deleted.append(parts[1])
                changes.added.append(path)

        return changes

    def _run(self, repo_root: Path, *args: str) -> str:
        proc = subprocess.run(
            [self.git_binary, *args],
            cwd=repo_root,
            capture_output=True,
            text=True,
            check=True,
            timeout=self.timeout,
        )
        return proc.stdout.strip()


class StaticRepositoryState:
    """Repository state pinned to a known revision, for non-git trees and tests."""

    def __init__(self, revision: str, branch: str | None = None) -> None:
        self.revision = revision
        self.branch = branch

    def resolve_revision(self, repo_root: Path) -> str:
        if not self.revision:
            raise RevisionUnresolvedError(f"No revision configured for {repo_root}")
        return self.revision

    def ensure_valid(self, repo_root: Path) -> None:
        self.resolve_revision(repo_root)

    def current_branch(self, repo_root: Path) -> str | None:
        return self.branch

    def changed_files(self, repo_root: Path, from_revision: str, to_revision: str) -> ChangeSet:
        return ChangeSet()
