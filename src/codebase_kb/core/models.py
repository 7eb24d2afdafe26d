from enum import Enum

from pydantic import BaseModel, Field


class Declaration(BaseModel):
    """A symbol declared in a file or chunk."""

    type: str
    name: str
    line: int
    # Inheritance hints for class-like declarations
    extends: str | None = None
    implements: list[str] = Field(default_factory=list)
    uses: list[str] = Field(default_factory=list)


class ImportRef(BaseModel):
    """An import, include or namespace statement."""

    type: str
    path: str
    line: int
    alias: str | None = None


class Usage(BaseModel):
    """A reference to a symbol declared elsewhere."""

    symbol: str
    line: int


class Excluded(BaseModel):
    """The path matched an exclusion rule."""

    rule: str
    matched_at: str

    @property
    def excluded(self) -> bool:
        return True


class Included(BaseModel):
    """No exclusion rule matched the path."""

    @property
    def excluded(self) -> bool:
        return False


ExclusionDecision = Excluded | Included


class FileRecord(BaseModel):
    """One indexed path of the repository manifest."""

    file_id: str
    path: str
    extension: str | None = None
    language: str = "plaintext"
    size_bytes: int = 0
    content_hash: str | None = None
    line_count: int = 0
    is_binary: bool = False
    is_excluded: bool = False
    exclusion_reason: str | None = None
    framework_hints: list[str] = Field(default_factory=list)
    symbols_declared: list[Declaration] = Field(default_factory=list)
    imports: list[ImportRef] = Field(default_factory=list)
    modified_at: str | None = None


class FileIndexEntry(FileRecord):
    """A files_index record: the file plus the IDs of its chunks."""

    chunk_ids: list[str] = Field(default_factory=list)
    chunk_count: int = 0


class Chunk(BaseModel):
    """A contiguous line range of one file, individually addressable."""

    chunk_id: str
    path: str
    file_content_hash: str
    start_line: int
    end_line: int
    chunk_index: int = 0
    is_complete_file: bool = False
    content: str
    chunk_content_hash: str
    chunk_bytes: int = 0
    chunk_lines: int = 0
    symbols_declared: list[Declaration] = Field(default_factory=list)
    symbols_used: list[Usage] = Field(default_factory=list)
    imports: list[ImportRef] = Field(default_factory=list)


class Document(BaseModel):
    """A file's text handed to a chunker."""

    path: str
    content: str
    content_hash: str
    language: str = "plaintext"


class ExclusionLogEntry(BaseModel):
    path: str
    rule: str
    matched_at: str


class ScanStats(BaseModel):
    total_files: int = 0
    total_lines: int = 0
    total_bytes: int = 0
    excluded_count: int = 0
    binary_count: int = 0
    skipped_count: int = 0
    duration_ms: int = 0


class ScanResult(BaseModel):
    """Output of a full repository scan."""

    files: list[FileRecord]
    stats: ScanStats
    exclusion_log: list[ExclusionLogEntry] = Field(default_factory=list)
    rules_version: str


class ChangeSet(BaseModel):
    """Externally supplied change list, e.g. from a version-control diff."""

    added: list[str] = Field(default_factory=list)
    modified: list[str] = Field(default_factory=list)
    deleted: list[str] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.modified or self.deleted)


class UpdateResult(BaseModel):
    """Manifest after an incremental update."""

    files: list[FileRecord]
    updated_paths: list[str] = Field(default_factory=list)
    removed_paths: list[str] = Field(default_factory=list)


class ChunkBuildResult(BaseModel):
    chunks: list[Chunk]
    file_to_chunks: dict[str, list[str]] = Field(default_factory=dict)
    skipped: list[str] = Field(default_factory=list)


class ValidationSummary(BaseModel):
    """Cross-consistency report of a written snapshot."""

    is_valid: bool
    scan_id: str
    output_path: str
    files_index_entries: int = 0
    chunks_count: int = 0
    chunk_ids_in_index: int = 0
    chunk_ids_in_chunks: int = 0
    missing_in_chunks: int = 0
    orphaned_chunks: int = 0
    missing_sample: list[str] = Field(default_factory=list)
    orphaned_sample: list[str] = Field(default_factory=list)
    coverage_percent: float = 100.0


class SnapshotStats(BaseModel):
    total_files_scanned: int = 0
    total_files_excluded: int = 0
    total_chunks: int = 0
    total_lines: int = 0
    total_bytes: int = 0
    scan_duration_ms: int = 0


class ScanMeta(BaseModel):
    """Contents of scan_meta.json."""

    scan_id: str
    project_id: str
    repo_name: str
    branch: str | None = None
    head_commit_sha: str
    scanned_at: str
    scanner_version: str
    rules_version: str
    is_incremental: bool = False
    previous_scan_id: str | None = None
    stats: SnapshotStats = Field(default_factory=SnapshotStats)


class DirectorySummary(BaseModel):
    directory: str
    file_count: int = 0
    total_size: int = 0
    total_lines: int = 0
    depth: int = 0
    languages: dict[str, int] = Field(default_factory=dict)


class ExtensionStat(BaseModel):
    files: int = 0
    lines: int = 0
    bytes: int = 0


class DirectoryStats(BaseModel):
    """Contents of directory_stats.json."""

    generated_at: str
    by_directory: list[DirectorySummary] = Field(default_factory=list)
    by_extension: dict[str, ExtensionStat] = Field(default_factory=dict)


class RelatedFile(BaseModel):
    """A file reached while expanding a graph neighborhood."""

    path: str
    relationship: str
    depth: int
    weight: float
    direction: str


class ClusterMember(BaseModel):
    path: str
    cluster_score: float


class GraphStats(BaseModel):
    node_count: int = 0
    edge_count: int = 0
    symbol_count: int = 0
    avg_dependencies: float = 0.0


class ChunkIdFormat(str, Enum):
    """Shape of a chunk identifier found in a snapshot or store."""

    CURRENT = "current"
    LEGACY_V1 = "legacy_v1"
    LEGACY_V2 = "legacy_v2"
    UNRECOGNIZED = "unrecognized"


class ChunkIdMigration(BaseModel):
    old_chunk_id: str
    new_chunk_id: str
    format: ChunkIdFormat


class MigrationPlan(BaseModel):
    migrations: list[ChunkIdMigration] = Field(default_factory=list)
    unchanged: int = 0
    skipped: int = 0
