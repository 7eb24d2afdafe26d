"""Unit tests for repository state lookups."""

import subprocess
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from codebase_kb.core.errors import RevisionUnresolvedError
from codebase_kb.infrastructure.vcs.git import GitRepositoryState, StaticRepositoryState

SHA = "0123456789abcdef0123456789abcdef01234567"


def _completed(stdout: str) -> MagicMock:
    proc = MagicMock()
    proc.stdout = stdout
    return proc


class TestGitRepositoryState:
    """Tests for GitRepositoryState with a mocked git binary."""

    @patch("codebase_kb.infrastructure.vcs.git.subprocess.run")
    def test_resolve_revision(self, mock_run):
        """Test HEAD is resolved through rev-parse in the repository root."""
        mock_run.return_value = _completed(SHA + "\n")

        assert GitRepositoryState().resolve_revision(Path("/repo")) == SHA
        args, kwargs = mock_run.call_args
        assert args[0] == ["git", "rev-parse", "HEAD"]
        assert kwargs["cwd"] == Path("/repo")
        assert kwargs["check"] is True

    @patch("codebase_kb.infrastructure.vcs.git.subprocess.run")
    def test_malformed_revision(self, mock_run):
        """Test output that is not a full SHA is rejected."""
        mock_run.return_value = _completed("HEAD")

        with pytest.raises(RevisionUnresolvedError, match="Unexpected revision"):
            GitRepositoryState().resolve_revision(Path("/repo"))

    @patch("codebase_kb.infrastructure.vcs.git.subprocess.run")
    def test_git_failure_is_wrapped(self, mock_run):
        """Test process errors surface as RevisionUnresolvedError."""
        mock_run.side_effect = subprocess.CalledProcessError(128, ["git", "rev-parse"])

        with pytest.raises(RevisionUnresolvedError, match="Cannot resolve HEAD"):
            GitRepositoryState().ensure_valid(Path("/repo"))

    @patch("codebase_kb.infrastructure.vcs.git.subprocess.run")
    def test_missing_git_binary(self, mock_run):
        """Test a missing executable surfaces as RevisionUnresolvedError."""
        mock_run.side_effect = FileNotFoundError("git")

        with pytest.raises(RevisionUnresolvedError):
            GitRepositoryState(git_binary="/no/git").resolve_revision(Path("/repo"))

    @patch("codebase_kb.infrastructure.vcs.git.subprocess.run")
    def test_current_branch(self, mock_run):
        """Test branch names, detached HEAD and failures."""
        state = GitRepositoryState()

        mock_run.return_value = _completed("feature/search\n")
        assert state.current_branch(Path("/repo")) == "feature/search"

        mock_run.return_value = _completed("HEAD\n")
        assert state.current_branch(Path("/repo")) is None

        mock_run.side_effect = subprocess.CalledProcessError(128, ["git"])
        assert state.current_branch(Path("/repo")) is None

    @patch("codebase_kb.infrastructure.vcs.git.subprocess.run")
    def test_changed_files(self, mock_run):
        """Test name-status output maps onto added, modified and deleted paths."""
        mock_run.return_value = _completed(
            "A\tapp/New.php\n"
            "M\tapp/Models/User.php\n"
            "D\tapp/Old.php\n"
            "\n"
        )

        changes = GitRepositoryState().changed_files(Path("/repo"), "abc", "def")

        assert changes.added == ["app/New.php"]
        assert changes.modified == ["app/Models/User.php"]
        assert changes.deleted == ["app/Old.php"]
        assert mock_run.call_args[0][0] == ["git", "diff", "--name-status", "abc", "def"]

    @patch("codebase_kb.infrastructure.vcs.git.subprocess.run")
    def test_rename_deletes_old_path(self, mock_run):
        """Test a rename removes the old path and adds the new one."""
        mock_run.return_value = _completed("R100\tapp/Before.php\tapp/After.php\n")

        changes = GitRepositoryState().changed_files(Path("/repo"), "abc", "def")

        assert changes.added == ["app/After.php"]
        assert changes.modified == []
        assert changes.deleted == ["app/Before.php"]

    @patch("codebase_kb.infrastructure.vcs.git.subprocess.run")
    def test_copy_keeps_source_path(self, mock_run):
        """Test a copy only adds the destination."""
        mock_run.return_value = _completed("C075\tapp/Base.php\tapp/Copy.php\n")

        changes = GitRepositoryState().changed_files(Path("/repo"), "abc", "def")

        assert changes.added == ["app/Copy.php"]
        assert changes.deleted == []


class TestStaticRepositoryState:
    """Tests for the pinned repository state."""

    def test_pinned_revision(self):
        """Test the configured revision and branch are returned as-is."""
        state = StaticRepositoryState(SHA, branch="main")

        assert state.resolve_revision(Path(".")) == SHA
        assert state.current_branch(Path(".")) == "main"
        assert state.changed_files(Path("."), "a", "b").is_empty

    def test_empty_revision_is_invalid(self):
        """Test an empty revision fails validation."""
        with pytest.raises(RevisionUnresolvedError):
            StaticRepositoryState("").ensure_valid(Path("."))
