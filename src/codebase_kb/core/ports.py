from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import Protocol

from codebase_kb.core.models import (
    ChangeSet,
    Chunk,
    Declaration,
    Document,
    FileRecord,
    ImportRef,
    Usage,
)


class ISymbolStrategy(Protocol):
    """Protocol defining a per-language symbol extraction pass."""

    def declarations(self, content: str) -> list[Declaration]:
        """Returns classes, functions and other symbols declared in the text."""
        ...

    def imports(self, content: str) -> list[ImportRef]:
        """Returns import/include statements found in the text."""
        ...

    def usages(self, content: str) -> list[Usage]:
        """Returns references to symbols, uncapped."""
        ...


class IChunker(Protocol):
    """Protocol defining how a file's text is split into line-range chunks."""

    def process(self, document: Document) -> Iterator[Chunk]:
        """Yields the chunks of one document in line order."""
        ...


class IRepositoryState(Protocol):
    """Protocol for the version-control collaborator."""

    def resolve_revision(self, repo_root: Path) -> str:
        """Returns the concrete revision identifier checked out at repo_root."""
        ...

    def ensure_valid(self, repo_root: Path) -> None:
        """Raises RevisionUnresolvedError if the working tree has no resolvable revision."""
        ...

    def current_branch(self, repo_root: Path) -> str | None:
        """Returns the checked-out branch name, or None when detached."""
        ...

    def changed_files(self, repo_root: Path, from_revision: str, to_revision: str) -> ChangeSet:
        """Lists paths added, modified and deleted between two revisions."""
        ...


class IFileStore(Protocol):
    """Replaceable persistence for file metadata, keyed by path."""

    def upsert(self, record: FileRecord) -> None: ...

    def delete(self, paths: Iterable[str]) -> None: ...

    def bulk_insert(self, records: Iterable[FileRecord]) -> None: ...

    def get(self, path: str) -> FileRecord | None: ...

    def all(self) -> list[FileRecord]: ...


class IChunkStore(Protocol):
    """Replaceable persistence for chunks, grouped by owning path."""

    def delete_for_paths(self, paths: Iterable[str]) -> None: ...

    def bulk_insert(self, chunks: Iterable[Chunk]) -> None: ...

    def for_path(self, path: str) -> list[Chunk]: ...

    def all(self) -> list[Chunk]: ...
