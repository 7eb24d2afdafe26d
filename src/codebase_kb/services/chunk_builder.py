import hashlib
from collections.abc import Iterable
from pathlib import Path

from loguru import logger

from codebase_kb.config import ChunkingConfig
from codebase_kb.core.models import Chunk, ChunkBuildResult, Document, FileRecord
from codebase_kb.core.ports import IChunker
from codebase_kb.core.registry import ComponentRegistry
from codebase_kb.infrastructure.extraction.extractor import SymbolExtractor


class ChunkBuilder:
    """Orchestrates chunking over a file manifest.

    Files are processed priority directories first, then by path. Content is
    re-read from the working tree and must still hash to the manifest's
    ``content_hash``; files that changed since the scan are skipped rather
    than chunked under a stale identity.
    """

    def __init__(
        self,
        config: ChunkingConfig | None = None,
        extractor: SymbolExtractor | None = None,
        max_file_size: int = 1024 * 1024,
        chunker: IChunker | None = None,
    ) -> None:
        self.config = config or ChunkingConfig()
        self.max_file_size = max_file_size
        if chunker is None:
            chunker_class = ComponentRegistry.get_chunker("code")
            chunker = chunker_class(
                max_chunk_lines=self.config.max_chunk_lines,
                min_chunk_lines=self.config.min_chunk_lines,
                max_chunk_bytes=self.config.max_chunk_bytes,
                break_weights=self.config.break_weights,
                extractor=extractor or SymbolExtractor(),
            )
        self.chunker = chunker

    def build(self, repo_root: str | Path, files: Iterable[FileRecord]) -> ChunkBuildResult:
        """Chunks every eligible file of the manifest."""
        root = Path(repo_root)
        eligible = self.order_files(f for f in files if self.is_eligible(f))

        chunks: list[Chunk] = []
        file_to_chunks: dict[str, list[str]] = {}
        skipped: list[str] = []

        for processed, record in enumerate(eligible, start=1):
            content = self._read_verified(root, record)
            if content is None:
                skipped.append(record.path)
                continue

            file_chunks = self.chunk_document(record, content)
            chunks.extend(file_chunks)
            file_to_chunks[record.path] = [c.chunk_id for c in file_chunks]

            if processed % 50 == 0:
                logger.debug("Chunked {}/{} files", processed, len(eligible))

        logger.info(
            "Built {} chunks from {} files ({} skipped)",
            len(chunks),
            len(file_to_chunks),
            len(skipped),
        )
        return ChunkBuildResult(chunks=chunks, file_to_chunks=file_to_chunks, skipped=skipped)

    def chunk_document(self, record: FileRecord, content: str) -> list[Chunk]:
        """Chunks content the caller already holds, under the record's hash."""
        content_hash = record.content_hash or hashlib.sha1(content.encode("utf-8")).hexdigest()
        document = Document(
            path=record.path,
            content=content,
            content_hash=content_hash,
            language=record.language,
        )
        return list(self.chunker.process(document))

    def rebuild_for_files(
        self,
        repo_root: str | Path,
        files: Iterable[FileRecord],
        paths: Iterable[str],
        previous: Iterable[Chunk],
    ) -> ChunkBuildResult:
        """Re-chunks only ``paths``; chunks of every other file are carried over."""
        targets = set(paths)
        records = list(files)
        rebuilt = self.build(repo_root, [r for r in records if r.path in targets])

        known_paths = {r.path for r in records}
        kept = [c for c in previous if c.path not in targets and c.path in known_paths]

        chunks = sorted([*kept, *rebuilt.chunks], key=lambda c: (c.path, c.start_line))
        file_to_chunks: dict[str, list[str]] = {}
        for chunk in chunks:
            file_to_chunks.setdefault(chunk.path, []).append(chunk.chunk_id)

        return ChunkBuildResult(
            chunks=chunks, file_to_chunks=file_to_chunks, skipped=rebuilt.skipped
        )

    def is_eligible(self, record: FileRecord) -> bool:
        return (
            not record.is_binary
            and not record.is_excluded
            and 0 < record.size_bytes <= self.max_file_size
        )

    def order_files(self, files: Iterable[FileRecord]) -> list[FileRecord]:
        """Priority directories first (in configured order), then by path."""
        return sorted(files, key=lambda f: (self._priority(f.path), f.path))

    def _priority(self, path: str) -> int:
        for index, directory in enumerate(self.config.priority_dirs):
            if path == directory or path.startswith(directory.rstrip("/") + "/"):
                return index
        return len(self.config.priority_dirs)

    @staticmethod
    def _read_verified(root: Path, record: FileRecord) -> str | None:
        try:
            data = (root / record.path).read_bytes()
        except OSError as e:
            logger.warning("Skipping unreadable file {}: {}", record.path, e)
            return None

        current_hash = hashlib.sha1(data).hexdigest()
        if current_hash != record.content_hash:
            logger.warning(
                "Skipping {}: content changed since scan (expected {}, found {})",
                record.path,
                record.content_hash,
                current_hash,
            )
            return None

        return data.decode("utf-8", errors="replace")
