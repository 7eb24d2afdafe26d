from collections.abc import Iterable

from codebase_kb.core.models import Chunk, FileRecord


class InMemoryFileStore:
    """File metadata keyed by path. Upserts replace the whole record."""

    def __init__(self) -> None:
        self._records: dict[str, FileRecord] = {}

    def upsert(self, record: FileRecord) -> None:
        self._records[record.path] = record

    def delete(self, paths: Iterable[str]) -> None:
        for path in paths:
            self._records.pop(path, None)

    def bulk_insert(self, records: Iterable[FileRecord]) -> None:
        for record in records:
            self._records[record.path] = record

    def get(self, path: str) -> FileRecord | None:
        return self._records.get(path)

    def all(self) -> list[FileRecord]:
        return [self._records[p] for p in sorted(self._records)]


class InMemoryChunkStore:
    """Chunks grouped by owning path, returned in (path, start_line) order."""

    def __init__(self) -> None:
        self._chunks: dict[str, list[Chunk]] = {}

    def delete_for_paths(self, paths: Iterable[str]) -> None:
        for path in paths:
            self._chunks.pop(path, None)

    def bulk_insert(self, chunks: Iterable[Chunk]) -> None:
        for chunk in chunks:
            self._chunks.setdefault(chunk.path, []).append(chunk)
        for path_chunks in self._chunks.values():
            path_chunks.sort(key=lambda c: c.start_line)

    def for_path(self, path: str) -> list[Chunk]:
        return list(self._chunks.get(path, []))

    def all(self) -> list[Chunk]:
        return [chunk for path in sorted(self._chunks) for chunk in self._chunks[path]]
