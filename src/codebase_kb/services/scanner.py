import hashlib
import os
import posixpath
import time
from collections.abc import Callable, Iterable, Iterator
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from loguru import logger

from codebase_kb.core.errors import RepositoryNotFoundError
from codebase_kb.core.models import (
    ChangeSet,
    DirectorySummary,
    ExclusionLogEntry,
    FileRecord,
    ScanResult,
    ScanStats,
    UpdateResult,
)
from codebase_kb.infrastructure.detection.framework import FrameworkHintDetector
from codebase_kb.infrastructure.detection.language import LanguageDetector
from codebase_kb.infrastructure.exclusion.extensions import normalize_path, resolve_extension
from codebase_kb.infrastructure.exclusion.rules import ExclusionRuleSet
from codebase_kb.infrastructure.extraction.extractor import SymbolExtractor

ROOT_DIRECTORY = "(root)"
_HASH_BLOCK_SIZE = 1024 * 1024


def file_id_for(path: str) -> str:
    return "f_" + hashlib.sha1(path.encode("utf-8")).hexdigest()[:12]


def _hash_file(path: Path) -> str:
    digest = hashlib.sha1()
    with open(path, "rb") as f:
        while block := f.read(_HASH_BLOCK_SIZE):
            digest.update(block)
    return digest.hexdigest()


class Scanner:
    """Walks a repository once and builds the file manifest.

    Excluded paths are counted and logged (bounded), binary files are hashed
    without capturing content, and text files under the size ceiling are read
    for hashing, line counting, language and framework detection and symbol
    extraction. Failures on a single file are logged and counted, never raised.
    """

    def __init__(
        self,
        rules: ExclusionRuleSet,
        extractor: SymbolExtractor | None = None,
        language_detector: LanguageDetector | None = None,
        framework_detector: FrameworkHintDetector | None = None,
        max_file_size: int = 1024 * 1024,
        exclusion_log_limit: int = 1000,
    ) -> None:
        self.rules = rules
        self.extractor = extractor or SymbolExtractor()
        self.language_detector = language_detector or LanguageDetector()
        self.framework_detector = framework_detector or FrameworkHintDetector()
        self.max_file_size = max_file_size
        self.exclusion_log_limit = exclusion_log_limit

    def scan(self, repo_root: str | Path) -> ScanResult:
        """Scans every file under repo_root in a deterministic, sorted order."""
        root = self._resolve_root(repo_root)
        started = time.perf_counter()

        files: list[FileRecord] = []
        exclusion_log: list[ExclusionLogEntry] = []
        stats = ScanStats()

        def log_exclusion(path: str, rule: str, matched_at: str) -> None:
            stats.excluded_count += 1
            if len(exclusion_log) < self.exclusion_log_limit:
                exclusion_log.append(ExclusionLogEntry(path=path, rule=rule, matched_at=matched_at))

        processed = 0
        for relative_path, full_path in self._walk(root, log_exclusion):
            processed += 1
            if processed % 100 == 0:
                logger.debug("Scanned {} files in {}", processed, root)

            decision = self.rules.decide(relative_path)
            if decision.excluded:
                log_exclusion(relative_path, decision.rule, decision.matched_at)
                continue

            record = self.scan_file(full_path, relative_path)
            if record is None:
                stats.skipped_count += 1
                continue

            if record.is_binary:
                stats.binary_count += 1
            files.append(record)
            stats.total_files += 1
            stats.total_lines += record.line_count
            stats.total_bytes += record.size_bytes

        stats.duration_ms = int((time.perf_counter() - started) * 1000)
        logger.info(
            "Scan of {} complete: {} files, {} excluded, {} skipped in {}ms",
            root,
            stats.total_files,
            stats.excluded_count,
            stats.skipped_count,
            stats.duration_ms,
        )

        return ScanResult(
            files=files,
            stats=stats,
            exclusion_log=exclusion_log,
            rules_version=self.rules.rules_version,
        )

    def scan_file(self, full_path: str | Path, relative_path: str) -> FileRecord | None:
        """Builds the record of one included file, or None if it cannot be read."""
        full_path = Path(full_path)
        relative_path = normalize_path(relative_path)

        try:
            stat = full_path.stat()
        except OSError as e:
            logger.warning("Skipping {}: {}", relative_path, e)
            return None

        size = stat.st_size
        is_binary = self.rules.is_binary(relative_path)
        record = FileRecord(
            file_id=file_id_for(relative_path),
            path=relative_path,
            extension=resolve_extension(relative_path),
            language=self.language_detector.detect(relative_path),
            size_bytes=size,
            is_binary=is_binary,
            modified_at=datetime.fromtimestamp(stat.st_mtime, tz=UTC).isoformat(),
        )

        if size == 0:
            return record

        try:
            if is_binary or size > self.max_file_size:
                # Hash only, content is never captured
                record.content_hash = _hash_file(full_path)
                return record
            data = full_path.read_bytes()
        except OSError as e:
            logger.warning("Skipping unreadable file {}: {}", relative_path, e)
            return None

        content = data.decode("utf-8", errors="replace")
        record.content_hash = hashlib.sha1(data).hexdigest()
        record.line_count = data.count(b"\n") + 1
        record.framework_hints = self.framework_detector.detect(relative_path, content)
        record.symbols_declared = self.extractor.extract_declarations(content, record.language)
        record.imports = self.extractor.extract_imports(content, record.language)
        record.language = self.language_detector.detect(relative_path, content)
        return record

    def update_changed(
        self,
        repo_root: str | Path,
        changes: ChangeSet,
        current_files: Iterable[FileRecord],
    ) -> UpdateResult:
        """Applies an external change list to an existing manifest.

        Deleted paths are dropped. Added and modified paths have exclusion
        re-evaluated first, then are re-scanned and replace any existing record.
        """
        root = self._resolve_root(repo_root)
        by_path = {record.path: record for record in current_files}
        updated: list[str] = []
        removed: list[str] = []

        for path in map(normalize_path, changes.deleted):
            if by_path.pop(path, None) is not None:
                removed.append(path)

        for path in map(normalize_path, [*changes.added, *changes.modified]):
            decision = self.rules.decide(path)
            if decision.excluded:
                previous = by_path.get(path)
                base = previous or FileRecord(
                    file_id=file_id_for(path),
                    path=path,
                    extension=resolve_extension(path),
                    language=self.language_detector.detect(path),
                )
                by_path[path] = base.model_copy(
                    update={"is_excluded": True, "exclusion_reason": decision.rule}
                )
                updated.append(path)
                continue

            full_path = root / path
            if not full_path.is_file():
                logger.debug("Changed path {} no longer exists, skipping", path)
                continue

            record = self.scan_file(full_path, path)
            if record is not None:
                by_path[path] = record
                updated.append(path)

        logger.info("Incremental update: {} updated, {} removed", len(updated), len(removed))
        return UpdateResult(
            files=[by_path[p] for p in sorted(by_path)],
            updated_paths=updated,
            removed_paths=removed,
        )

    @staticmethod
    def by_directory(files: Iterable[FileRecord]) -> list[DirectorySummary]:
        """Per-directory totals of non-excluded files, sorted by directory."""
        summaries: dict[str, DirectorySummary] = {}

        for record in files:
            if record.is_excluded:
                continue
            directory = posixpath.dirname(record.path) or ROOT_DIRECTORY
            summary = summaries.get(directory)
            if summary is None:
                depth = 0 if directory == ROOT_DIRECTORY else directory.count("/") + 1
                summary = summaries[directory] = DirectorySummary(directory=directory, depth=depth)
            summary.file_count += 1
            summary.total_size += record.size_bytes
            summary.total_lines += record.line_count
            language = record.language or "unknown"
            summary.languages[language] = summary.languages.get(language, 0) + 1

        return [summaries[d] for d in sorted(summaries)]

    @staticmethod
    def by_top_level_directory(files: Iterable[FileRecord]) -> list[DirectorySummary]:
        """Totals per first path segment, largest file count first."""
        summaries: dict[str, DirectorySummary] = {}

        for record in files:
            if record.is_excluded:
                continue
            top = record.path.split("/", 1)[0] if "/" in record.path else ROOT_DIRECTORY
            summary = summaries.get(top)
            if summary is None:
                summary = summaries[top] = DirectorySummary(
                    directory=top, depth=0 if top == ROOT_DIRECTORY else 1
                )
            summary.file_count += 1
            summary.total_size += record.size_bytes
            summary.total_lines += record.line_count

        return sorted(summaries.values(), key=lambda s: (-s.file_count, s.directory))

    @staticmethod
    def directory_tree(files: Iterable[FileRecord]) -> dict[str, Any]:
        """Nested dict of directories; each level lists its files under ``_files``."""
        tree: dict[str, Any] = {}

        for record in sorted(files, key=lambda r: r.path):
            if record.is_excluded:
                continue
            *directories, name = record.path.split("/")
            node = tree
            for part in directories:
                node = node.setdefault(part, {"_files": []})
            node.setdefault("_files", []).append(
                {
                    "name": name,
                    "path": record.path,
                    "size": record.size_bytes,
                    "lines": record.line_count,
                    "language": record.language,
                }
            )

        return tree

    def _walk(
        self, root: Path, log_exclusion: Callable[[str, str, str], None]
    ) -> Iterator[tuple[str, Path]]:
        """Yields (relative path, absolute path) of regular files, sorted.

        Directories whose name is an excluded directory are not descended for
        scanning, but every file beneath them is still counted and logged.
        """
        for current, dirnames, filenames in os.walk(root):
            base = Path(current)
            relative_dir = base.relative_to(root).as_posix()
            prefix = "" if relative_dir == "." else relative_dir + "/"

            kept = []
            for name in sorted(dirnames):
                if self.rules.is_directory_excluded(name):
                    rule = f"directory:{name}"
                    for excluded_path in self._files_under(base / name, root):
                        log_exclusion(excluded_path, rule, name)
                else:
                    kept.append(name)
            dirnames[:] = kept

            for name in sorted(filenames):
                full_path = base / name
                if full_path.is_file():
                    yield prefix + name, full_path

    @staticmethod
    def _files_under(directory: Path, root: Path) -> list[str]:
        """Relative paths of every regular file below an excluded directory, sorted."""
        paths = []
        for current, _, filenames in os.walk(directory):
            base = Path(current)
            paths.extend(
                (base / name).relative_to(root).as_posix()
                for name in filenames
                if (base / name).is_file()
            )
        return sorted(paths)

    @staticmethod
    def _resolve_root(repo_root: str | Path) -> Path:
        root = Path(repo_root)
        if not root.is_dir():
            raise RepositoryNotFoundError(f"Repository path does not exist: {repo_root}")
        return root.resolve()
