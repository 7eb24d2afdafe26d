import json
import time
from collections.abc import Iterable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from loguru import logger

from codebase_kb.config import Settings
from codebase_kb.core.errors import SnapshotWriteError
from codebase_kb.core.models import (
    Chunk,
    DirectoryStats,
    ExtensionStat,
    FileIndexEntry,
    FileRecord,
    ScanMeta,
    SnapshotStats,
    ValidationSummary,
)
from codebase_kb.core.ports import IRepositoryState
from codebase_kb.infrastructure.storage.reader import (
    CHUNKS_FILE,
    DIRECTORY_STATS_FILE,
    FILES_INDEX_JSON,
    FILES_INDEX_NDJSON,
    SCAN_META_FILE,
    SCANS_DIRECTORY,
    KnowledgeBaseReader,
)
from codebase_kb.services.scanner import Scanner


class KnowledgeBaseBuilder:
    """
    Writes one immutable snapshot of a repository and validates it.
    The revision is resolved before anything touches the filesystem, so an
    unresolvable working tree never leaves a snapshot directory behind.
    """

    def __init__(
        self,
        settings: Settings,
        repository_state: IRepositoryState,
        rules_version: str = "",
    ) -> None:
        self.settings = settings
        self.repository_state = repository_state
        self.rules_version = rules_version

    def build(
        self,
        repo_root: str | Path,
        files: Iterable[FileRecord],
        chunks: Iterable[Chunk],
        project_id: str | None = None,
        previous_snapshot_id: str | None = None,
        is_incremental: bool = False,
    ) -> ValidationSummary:
        started = time.perf_counter()
        root = Path(repo_root)

        # Fail fast: nothing is written for an unresolvable revision
        self.repository_state.ensure_valid(root)
        head_sha = self.repository_state.resolve_revision(root)
        branch = self.repository_state.current_branch(root)

        project_id = project_id or self.settings.project_id
        now = datetime.now(UTC)
        scan_id = self.generate_scan_id(project_id, head_sha, now)

        records = sorted(files, key=lambda f: f.path)
        ordered_chunks = sorted(chunks, key=lambda c: (c.path, c.start_line))
        output_path = self._create_output_directory(project_id, scan_id)
        scan_id = output_path.name

        self._write_files_index(output_path, records, ordered_chunks)
        self._write_chunks(output_path, ordered_chunks)
        self._write_directory_stats(output_path, records, now)

        included = [f for f in records if not f.is_excluded]
        meta = ScanMeta(
            scan_id=scan_id,
            project_id=project_id,
            repo_name=root.resolve().name,
            branch=branch,
            head_commit_sha=head_sha,
            scanned_at=now.isoformat(),
            scanner_version=self.settings.knowledge_base.scanner_version,
            rules_version=self.rules_version,
            is_incremental=is_incremental,
            previous_scan_id=previous_snapshot_id,
            stats=SnapshotStats(
                total_files_scanned=len(included),
                total_files_excluded=len(records) - len(included),
                total_chunks=len(ordered_chunks),
                total_lines=sum(f.line_count for f in included),
                total_bytes=sum(f.size_bytes for f in included),
                scan_duration_ms=int((time.perf_counter() - started) * 1000),
            ),
        )
        self._write_json(output_path / SCAN_META_FILE, meta.model_dump(mode="json"))

        # Validate from what is on disk, not from the in-memory inputs
        validation = KnowledgeBaseReader(output_path).validate()

        logger.info(
            "Knowledge base snapshot {} written to {} (valid={}, coverage={}%)",
            scan_id,
            output_path,
            validation.is_valid,
            validation.coverage_percent,
        )
        return validation

    @staticmethod
    def generate_scan_id(project_id: str, head_sha: str, when: datetime) -> str:
        return f"scan_{project_id}_{head_sha[:8]}_{when.strftime('%Y%m%d%H%M%S')}"

    def _create_output_directory(self, project_id: str, scan_id: str) -> Path:
        scans = Path(self.settings.kb_path) / project_id / SCANS_DIRECTORY
        candidate = scans / scan_id
        # Snapshots are immutable: a second build within the same second gets a suffix
        suffix = 1
        while candidate.exists():
            suffix += 1
            candidate = scans / f"{scan_id}_{suffix}"

        try:
            candidate.mkdir(parents=True)
        except OSError as e:
            raise SnapshotWriteError(f"Cannot create snapshot directory {candidate}: {e}") from e
        return candidate

    def _write_files_index(
        self, output_path: Path, records: list[FileRecord], chunks: list[Chunk]
    ) -> None:
        chunk_ids: dict[str, list[str]] = {}
        for chunk in chunks:
            chunk_ids.setdefault(chunk.path, []).append(chunk.chunk_id)

        entries = (
            FileIndexEntry(
                **record.model_dump(),
                chunk_ids=chunk_ids.get(record.path, []),
                chunk_count=len(chunk_ids.get(record.path, [])),
            ).model_dump(mode="json")
            for record in records
        )

        if len(records) > self.settings.knowledge_base.ndjson_threshold:
            self._write_ndjson(output_path / FILES_INDEX_NDJSON, entries)
        else:
            self._write_json(output_path / FILES_INDEX_JSON, list(entries))

    def _write_chunks(self, output_path: Path, chunks: list[Chunk]) -> None:
        self._write_ndjson(output_path / CHUNKS_FILE, (c.model_dump(mode="json") for c in chunks))

    def _write_directory_stats(
        self, output_path: Path, records: list[FileRecord], now: datetime
    ) -> None:
        included = [f for f in records if not f.is_excluded]

        by_extension: dict[str, ExtensionStat] = {}
        for record in included:
            stat = by_extension.setdefault(record.extension or "no_extension", ExtensionStat())
            stat.files += 1
            stat.lines += record.line_count
            stat.bytes += record.size_bytes

        stats = DirectoryStats(
            generated_at=now.isoformat(),
            by_directory=Scanner.by_directory(included),
            by_extension=dict(sorted(by_extension.items())),
        )
        self._write_json(output_path / DIRECTORY_STATS_FILE, stats.model_dump(mode="json"))

    @staticmethod
    def _write_json(path: Path, data: Any) -> None:
        try:
            encoded = json.dumps(data, indent=2, ensure_ascii=False)
            path.write_text(encoded, encoding="utf-8")
        except (TypeError, ValueError, OSError) as e:
            raise SnapshotWriteError(f"Failed to write {path.name}: {e}") from e

    @staticmethod
    def _write_ndjson(path: Path, records: Iterable[dict[str, Any]]) -> None:
        try:
            with open(path, "w", encoding="utf-8") as f:
                for record in records:
                    f.write(json.dumps(record, ensure_ascii=False) + "\n")
        except (TypeError, ValueError, OSError) as e:
            raise SnapshotWriteError(f"Failed to write {path.name}: {e}") from e
