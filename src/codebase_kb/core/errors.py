class KnowledgeBaseError(Exception):
    """Base class for fatal, repository-level indexing failures."""


class RepositoryNotFoundError(KnowledgeBaseError):
    """The repository root is missing or is not a directory."""


class RevisionUnresolvedError(KnowledgeBaseError):
    """Version control state cannot be resolved to a concrete revision."""


class SnapshotWriteError(KnowledgeBaseError):
    """A snapshot artifact could not be written or serialized."""


class SnapshotNotFoundError(KnowledgeBaseError):
    """A snapshot directory or one of its artifacts is missing."""
