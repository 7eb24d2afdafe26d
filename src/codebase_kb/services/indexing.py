from collections.abc import Iterable
from pathlib import Path
from typing import NamedTuple

from loguru import logger

from codebase_kb.config import Settings
from codebase_kb.core.graph import SymbolGraph
from codebase_kb.core.models import (
    ChangeSet,
    Chunk,
    ChunkBuildResult,
    FileRecord,
    ScanResult,
    ValidationSummary,
)
from codebase_kb.core.ports import IChunkStore, IFileStore, IRepositoryState
from codebase_kb.infrastructure.detection.framework import FrameworkHintDetector
from codebase_kb.infrastructure.detection.language import LanguageDetector
from codebase_kb.infrastructure.exclusion.rules import ExclusionRuleSet
from codebase_kb.infrastructure.extraction.extractor import SymbolExtractor
from codebase_kb.infrastructure.storage.memory import InMemoryChunkStore, InMemoryFileStore
from codebase_kb.infrastructure.storage.reader import prune_old_scans
from codebase_kb.services.chunk_builder import ChunkBuilder
from codebase_kb.services.graph import SymbolGraphBuilder
from codebase_kb.services.knowledge_base import KnowledgeBaseBuilder
from codebase_kb.services.scanner import Scanner


class IndexResult(NamedTuple):
    """Everything produced by one indexing run."""

    scan: ScanResult | None
    chunks: ChunkBuildResult
    validation: ValidationSummary
    graph: SymbolGraph


class IndexingService:
    """Orchestrates scanning, chunking, snapshot writing and graph building."""

    def __init__(
        self,
        settings: Settings,
        repository_state: IRepositoryState,
        file_store: IFileStore | None = None,
        chunk_store: IChunkStore | None = None,
    ) -> None:
        self.settings = settings
        self.repository_state = repository_state
        self.file_store = file_store or InMemoryFileStore()
        self.chunk_store = chunk_store or InMemoryChunkStore()
        self.extractor = SymbolExtractor()

    def build_rules(self, repo_root: str | Path) -> ExclusionRuleSet:
        return ExclusionRuleSet.from_config(self.settings.exclusions, Path(repo_root))

    def build_scanner(self, rules: ExclusionRuleSet) -> Scanner:
        return Scanner(
            rules,
            extractor=self.extractor,
            language_detector=LanguageDetector(self.settings.languages),
            framework_detector=FrameworkHintDetector(self.settings.framework_hints),
            max_file_size=self.settings.max_file_size,
            exclusion_log_limit=self.settings.exclusion_log_limit,
        )

    def build_chunker(self) -> ChunkBuilder:
        return ChunkBuilder(
            self.settings.chunking,
            extractor=self.extractor,
            max_file_size=self.settings.max_file_size,
        )

    def index(self, repo_root: str | Path, project_id: str | None = None) -> IndexResult:
        """Full build: scan, chunk, write and validate a snapshot, then build the graph."""
        root = Path(repo_root)
        # Resolve before scanning so an unusable tree fails before any work is done
        self.repository_state.ensure_valid(root)

        rules = self.build_rules(root)
        scan = self.build_scanner(rules).scan(root)
        chunk_result = self.build_chunker().build(root, scan.files)

        self._replace_files(scan.files)
        self._replace_chunks(chunk_result.chunks)

        validation = self._write_snapshot(
            root, rules.rules_version, project_id, previous_scan_id=None, is_incremental=False
        )
        graph = SymbolGraphBuilder(self.settings.graph).build(
            self.file_store.all(), self.chunk_store.all()
        )
        return IndexResult(scan=scan, chunks=chunk_result, validation=validation, graph=graph)

    def update(
        self,
        repo_root: str | Path,
        changes: ChangeSet,
        previous_files: Iterable[FileRecord] | None = None,
        previous_chunks: Iterable[Chunk] | None = None,
        previous_scan_id: str | None = None,
        project_id: str | None = None,
    ) -> IndexResult:
        """Incremental build: only the changed paths are re-scanned and re-chunked.

        Without explicit previous state the contents of the stores are used.
        """
        root = Path(repo_root)
        self.repository_state.ensure_valid(root)

        # Explicit previous state replaces whatever the stores currently hold
        if previous_files is not None:
            self._replace_files(previous_files)
        if previous_chunks is not None:
            self._replace_chunks(previous_chunks)
        files = self.file_store.all()
        chunks = self.chunk_store.all()

        rules = self.build_rules(root)
        update = self.build_scanner(rules).update_changed(root, changes, files)
        chunk_result = self.build_chunker().rebuild_for_files(
            root, update.files, update.updated_paths, chunks
        )

        stale = [*update.removed_paths, *update.updated_paths]
        self.file_store.delete(update.removed_paths)
        self.file_store.bulk_insert(update.files)
        self.chunk_store.delete_for_paths(stale)
        self.chunk_store.bulk_insert(c for c in chunk_result.chunks if c.path in stale)

        logger.info(
            "Incremental index: {} changed, {} removed, {} chunks",
            len(update.updated_paths),
            len(update.removed_paths),
            len(chunk_result.chunks),
        )

        validation = self._write_snapshot(
            root,
            rules.rules_version,
            project_id,
            previous_scan_id=previous_scan_id,
            is_incremental=True,
        )
        graph = SymbolGraphBuilder(self.settings.graph).build(
            self.file_store.all(), self.chunk_store.all()
        )
        return IndexResult(scan=None, chunks=chunk_result, validation=validation, graph=graph)

    def _replace_files(self, records: Iterable[FileRecord]) -> None:
        self.file_store.delete([r.path for r in self.file_store.all()])
        self.file_store.bulk_insert(records)

    def _replace_chunks(self, chunks: Iterable[Chunk]) -> None:
        self.chunk_store.delete_for_paths({c.path for c in self.chunk_store.all()})
        self.chunk_store.bulk_insert(chunks)

    def _write_snapshot(
        self,
        root: Path,
        rules_version: str,
        project_id: str | None,
        previous_scan_id: str | None,
        is_incremental: bool,
    ) -> ValidationSummary:
        builder = KnowledgeBaseBuilder(self.settings, self.repository_state, rules_version)
        validation = builder.build(
            root,
            self.file_store.all(),
            self.chunk_store.all(),
            project_id=project_id,
            previous_snapshot_id=previous_scan_id,
            is_incremental=is_incremental,
        )

        keep = self.settings.knowledge_base.keep_old_scans
        project_dir = Path(self.settings.kb_path) / (project_id or self.settings.project_id)
        prune_old_scans(project_dir, keep)
        return validation
