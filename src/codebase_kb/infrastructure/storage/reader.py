"""Read access to knowledge base snapshot directories.

Layout of one snapshot::

    <kb_path>/<project_id>/scans/<scan_id>/
        scan_meta.json
        files_index.json        (or files_index.ndjson for large repositories)
        chunks.ndjson
        directory_stats.json
"""

import json
import shutil
from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import Any

from loguru import logger

from codebase_kb.core.errors import SnapshotNotFoundError
from codebase_kb.core.models import (
    Chunk,
    DirectoryStats,
    FileIndexEntry,
    ScanMeta,
    ValidationSummary,
)
from codebase_kb.infrastructure.exclusion.rules import glob_to_regex

SCANS_DIRECTORY = "scans"
SCAN_META_FILE = "scan_meta.json"
FILES_INDEX_JSON = "files_index.json"
FILES_INDEX_NDJSON = "files_index.ndjson"
CHUNKS_FILE = "chunks.ndjson"
DIRECTORY_STATS_FILE = "directory_stats.json"

VALIDATION_SAMPLE_SIZE = 10


def read_ndjson(path: Path) -> Iterator[dict[str, Any]]:
    """Yields one decoded object per non-blank line."""
    with open(path, encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if line:
                yield json.loads(line)


def compare_chunk_ids(
    index_ids: Iterable[str],
    store_ids: Iterable[str],
    scan_id: str,
    output_path: str,
    files_index_entries: int = 0,
    chunks_count: int = 0,
) -> ValidationSummary:
    """Cross-checks chunk IDs referenced by the files index against the chunk store."""
    index_list = list(index_ids)
    store_list = list(store_ids)
    index_set = set(index_list)
    store_set = set(store_list)

    missing = sorted(index_set - store_set)
    orphaned = sorted(store_set - index_set)

    if store_set:
        coverage = round(len(index_set & store_set) / len(store_set) * 100, 2)
    else:
        coverage = 100.0

    summary = ValidationSummary(
        is_valid=not missing and not orphaned,
        scan_id=scan_id,
        output_path=output_path,
        files_index_entries=files_index_entries,
        chunks_count=chunks_count,
        chunk_ids_in_index=len(index_list),
        chunk_ids_in_chunks=len(store_list),
        missing_in_chunks=len(missing),
        orphaned_chunks=len(orphaned),
        missing_sample=missing[:VALIDATION_SAMPLE_SIZE],
        orphaned_sample=orphaned[:VALIDATION_SAMPLE_SIZE],
        coverage_percent=coverage,
    )

    if not summary.is_valid:
        logger.warning(
            "Snapshot {} failed validation: {} missing in chunks {}, {} orphaned {}",
            scan_id,
            summary.missing_in_chunks,
            summary.missing_sample,
            summary.orphaned_chunks,
            summary.orphaned_sample,
        )

    return summary


def list_scan_ids(project_dir: str | Path) -> list[str]:
    """Scan IDs under a project directory, oldest first by ``scanned_at``."""
    scans = Path(project_dir) / SCANS_DIRECTORY
    if not scans.is_dir():
        return []
    entries = [(_scanned_at(p), p.name) for p in scans.iterdir() if p.is_dir()]
    return [name for _, name in sorted(entries)]


def _scanned_at(snapshot_dir: Path) -> str:
    try:
        meta = json.loads((snapshot_dir / SCAN_META_FILE).read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.debug("Unreadable scan meta in {}: {}", snapshot_dir, e)
        return ""
    return str(meta.get("scanned_at", ""))


def latest_scan_id(project_dir: str | Path) -> str | None:
    scan_ids = list_scan_ids(project_dir)
    return scan_ids[-1] if scan_ids else None


def prune_old_scans(project_dir: str | Path, keep: int) -> list[str]:
    """Deletes all but the newest ``keep`` snapshots and returns the removed IDs."""
    if keep < 1:
        raise ValueError(f"keep must be at least 1, got {keep}")

    scan_ids = list_scan_ids(project_dir)
    removed = scan_ids[:-keep]
    for scan_id in removed:
        shutil.rmtree(Path(project_dir) / SCANS_DIRECTORY / scan_id)
        logger.info("Pruned old snapshot {}", scan_id)
    return removed


class KnowledgeBaseReader:
    """Streams records out of one snapshot directory; nothing is written."""

    def __init__(self, snapshot_dir: str | Path) -> None:
        self.base_path = Path(snapshot_dir)
        if not self.base_path.is_dir():
            raise SnapshotNotFoundError(f"Knowledge base not found: {self.base_path}")
        self._scan_meta: ScanMeta | None = None
        self._chunk_cache: dict[str, Chunk] = {}

    @classmethod
    def latest(cls, kb_path: str | Path, project_id: str) -> "KnowledgeBaseReader":
        project_dir = Path(kb_path) / project_id
        scan_id = latest_scan_id(project_dir)
        if scan_id is None:
            raise SnapshotNotFoundError(f"No knowledge base scan available for {project_id}")
        return cls(project_dir / SCANS_DIRECTORY / scan_id)

    @property
    def scan_id(self) -> str:
        return self.base_path.name

    def scan_meta(self) -> ScanMeta:
        if self._scan_meta is None:
            path = self._require(SCAN_META_FILE)
            self._scan_meta = ScanMeta.model_validate_json(path.read_text(encoding="utf-8"))
        return self._scan_meta

    def iter_files(self) -> Iterator[FileIndexEntry]:
        ndjson_path = self.base_path / FILES_INDEX_NDJSON
        if ndjson_path.is_file():
            for record in read_ndjson(ndjson_path):
                yield FileIndexEntry.model_validate(record)
            return

        json_path = self._require(FILES_INDEX_JSON)
        with open(json_path, encoding="utf-8") as f:
            records = json.load(f)
        for record in records:
            yield FileIndexEntry.model_validate(record)

    def files_index(self) -> list[FileIndexEntry]:
        return list(self.iter_files())

    def file_info(self, path: str) -> FileIndexEntry | None:
        return next((f for f in self.iter_files() if f.path == path), None)

    def iter_chunks(self) -> Iterator[Chunk]:
        for record in read_ndjson(self._require(CHUNKS_FILE)):
            yield Chunk.model_validate(record)

    def get_chunk(self, chunk_id: str) -> Chunk | None:
        if chunk_id in self._chunk_cache:
            return self._chunk_cache[chunk_id]
        for chunk in self.iter_chunks():
            if chunk.chunk_id == chunk_id:
                self._chunk_cache[chunk_id] = chunk
                return chunk
        return None

    def get_chunks(self, chunk_ids: Iterable[str]) -> dict[str, Chunk]:
        """Batch lookup with a single pass over the chunk store for cache misses."""
        wanted = list(dict.fromkeys(chunk_ids))
        results = {cid: self._chunk_cache[cid] for cid in wanted if cid in self._chunk_cache}
        needed = {cid for cid in wanted if cid not in results}

        if needed:
            for chunk in self.iter_chunks():
                if chunk.chunk_id in needed:
                    results[chunk.chunk_id] = self._chunk_cache[chunk.chunk_id] = chunk
                    needed.discard(chunk.chunk_id)
                    if not needed:
                        break

        return {cid: results[cid] for cid in wanted if cid in results}

    def chunks_for_file(self, path: str) -> list[Chunk]:
        info = self.file_info(path)
        if info is None or not info.chunk_ids:
            return []
        return sorted(self.get_chunks(info.chunk_ids).values(), key=lambda c: c.start_line)

    def directory_stats(self) -> DirectoryStats | None:
        path = self.base_path / DIRECTORY_STATS_FILE
        if not path.is_file():
            return None
        return DirectoryStats.model_validate_json(path.read_text(encoding="utf-8"))

    def search_files(self, pattern: str) -> list[FileIndexEntry]:
        """Files whose path matches a glob (``*`` within a segment, ``**`` across)."""
        regex = glob_to_regex(pattern)
        return [f for f in self.iter_files() if regex.match(f.path)]

    def files_by_language(self, language: str) -> list[FileIndexEntry]:
        return [f for f in self.iter_files() if f.language == language]

    def files_by_extension(self, extension: str) -> list[FileIndexEntry]:
        return [f for f in self.iter_files() if f.extension == extension]

    def validate(self) -> ValidationSummary:
        files_count = 0
        index_ids: list[str] = []
        for entry in self.iter_files():
            files_count += 1
            index_ids.extend(entry.chunk_ids)

        store_ids = [chunk.chunk_id for chunk in self.iter_chunks()]

        return compare_chunk_ids(
            index_ids,
            store_ids,
            scan_id=self.scan_id,
            output_path=str(self.base_path),
            files_index_entries=files_count,
            chunks_count=len(store_ids),
        )

    def clear_cache(self) -> None:
        self._scan_meta = None
        self._chunk_cache.clear()

    def _require(self, name: str) -> Path:
        path = self.base_path / name
        if not path.is_file():
            raise SnapshotNotFoundError(f"{name} not found in {self.base_path}")
        return path
