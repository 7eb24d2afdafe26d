"""Unit tests for ChunkBuilder."""

import pytest

from codebase_kb.config import ChunkingConfig, ExclusionConfig
from codebase_kb.core.models import ChangeSet, FileRecord
from codebase_kb.infrastructure.exclusion.rules import ExclusionRuleSet
from codebase_kb.services.chunk_builder import ChunkBuilder
from codebase_kb.services.scanner import Scanner


@pytest.fixture
def scanner():
    return Scanner(ExclusionRuleSet.from_config(ExclusionConfig()))


class TestBuild:
    """Tests for chunking a scanned manifest."""

    def test_every_text_file_is_chunked(self, scanner, sample_repo):
        """Test each eligible file gets chunks and binaries get none."""
        files = scanner.scan(sample_repo).files
        result = ChunkBuilder().build(sample_repo, files)

        text_paths = {f.path for f in files if not f.is_binary}
        assert set(result.file_to_chunks) == text_paths
        assert "public/logo.png" not in {c.path for c in result.chunks}
        assert result.skipped == []

    def test_priority_directories_first(self, scanner, sample_repo):
        """Test chunks come out in priority-directory order."""
        files = scanner.scan(sample_repo).files
        result = ChunkBuilder().build(sample_repo, files)

        assert list(result.file_to_chunks) == [
            "app/Contracts/HasRoles.php",
            "app/Http/Controllers/UserController.php",
            "app/Models/User.php",
            "resources/views/layouts/app.blade.php",
            "resources/views/users/index.blade.php",
            "resources/js/app.js",
            "resources/js/components/Button.vue",
            "README.md",
        ]

    def test_chunk_ids_are_stable_across_builds(self, scanner, sample_repo):
        """Test re-chunking an unchanged tree reproduces the same IDs."""
        files = scanner.scan(sample_repo).files
        first = ChunkBuilder().build(sample_repo, files)
        second = ChunkBuilder().build(sample_repo, scanner.scan(sample_repo).files)

        assert [c.chunk_id for c in first.chunks] == [c.chunk_id for c in second.chunks]

    def test_changed_file_is_skipped(self, scanner, sample_repo, caplog):
        """Test a file edited after the scan is skipped, not chunked under a stale hash."""
        files = scanner.scan(sample_repo).files
        (sample_repo / "app/Models/User.php").write_text("<?php\n// edited\n")

        result = ChunkBuilder().build(sample_repo, files)

        assert result.skipped == ["app/Models/User.php"]
        assert "app/Models/User.php" not in result.file_to_chunks
        assert "content changed since scan" in caplog.text

    def test_large_file_is_partitioned(self, make_repo, scanner):
        """Test a multi-chunk file covers every line exactly once."""
        body = "\n".join(f"$x{i} = {i};" if i % 60 else "" for i in range(1, 1201))
        repo = make_repo({"app/Big.php": body})
        files = scanner.scan(repo).files

        chunks = ChunkBuilder().build(repo, files).chunks
        ordered = sorted(chunks, key=lambda c: c.start_line)

        assert len(chunks) > 1
        assert ordered[0].start_line == 1
        assert ordered[-1].end_line == files[0].line_count
        for previous, current in zip(ordered, ordered[1:]):
            assert current.start_line == previous.end_line + 1
        assert all(c.file_content_hash == files[0].content_hash for c in chunks)

    def test_chunk_symbols(self, scanner, sample_repo):
        """Test chunks carry usages extracted from their own text."""
        files = scanner.scan(sample_repo).files
        result = ChunkBuilder().build(sample_repo, files)
        controller = next(c for c in result.chunks if c.path.endswith("UserController.php"))

        assert "User::find" in [u.symbol for u in controller.symbols_used]


class TestEligibility:
    """Tests for file eligibility and ordering helpers."""

    def test_is_eligible(self):
        """Test binary, excluded, empty and oversized files are not eligible."""
        builder = ChunkBuilder(max_file_size=100)

        assert builder.is_eligible(FileRecord(file_id="f", path="a.php", size_bytes=10))
        assert not builder.is_eligible(
            FileRecord(file_id="f", path="a.png", size_bytes=10, is_binary=True)
        )
        assert not builder.is_eligible(
            FileRecord(file_id="f", path="a.php", size_bytes=10, is_excluded=True)
        )
        assert not builder.is_eligible(FileRecord(file_id="f", path="a.php", size_bytes=0))
        assert not builder.is_eligible(FileRecord(file_id="f", path="a.php", size_bytes=101))

    def test_custom_priority_dirs(self):
        """Test configured priority directories order files ahead of the rest."""
        builder = ChunkBuilder(ChunkingConfig(priority_dirs=["src"]))
        records = [
            FileRecord(file_id="1", path="docs/a.md"),
            FileRecord(file_id="2", path="src/b.py"),
            FileRecord(file_id="3", path="srcs/c.py"),
        ]

        assert [r.path for r in builder.order_files(records)] == [
            "src/b.py",
            "docs/a.md",
            "srcs/c.py",
        ]


class TestRebuildForFiles:
    """Tests for incremental re-chunking."""

    def test_only_changed_paths_are_rechunked(self, scanner, sample_repo):
        """Test unchanged files keep their chunk IDs and changed files get new ones."""
        files = scanner.scan(sample_repo).files
        builder = ChunkBuilder()
        previous = builder.build(sample_repo, files)

        (sample_repo / "app/Models/User.php").write_text("<?php\nclass User {}\n")
        update = scanner.update_changed(
            sample_repo, ChangeSet(modified=["app/Models/User.php"]), files
        )
        rebuilt = builder.rebuild_for_files(
            sample_repo, update.files, update.updated_paths, previous.chunks
        )

        assert rebuilt.file_to_chunks["app/Contracts/HasRoles.php"] == (
            previous.file_to_chunks["app/Contracts/HasRoles.php"]
        )
        assert rebuilt.file_to_chunks["app/Models/User.php"] != (
            previous.file_to_chunks["app/Models/User.php"]
        )
        assert len(rebuilt.chunks) == len(previous.chunks)

    def test_deleted_file_chunks_are_dropped(self, scanner, sample_repo):
        """Test chunks of files no longer in the manifest are not carried over."""
        files = scanner.scan(sample_repo).files
        builder = ChunkBuilder()
        previous = builder.build(sample_repo, files)

        remaining = [f for f in files if f.path != "README.md"]
        rebuilt = builder.rebuild_for_files(sample_repo, remaining, [], previous.chunks)

        assert "README.md" not in rebuilt.file_to_chunks
        assert len(rebuilt.chunks) == len(previous.chunks) - 1
