"""Deterministic chunk identifiers.

A chunk ID is the first 16 hex characters of
``sha1(f"{path}:{file_content_hash}:{start_line}-{end_line}")``. It identifies
a (path, file version, line range) triple, not the chunk body, so it is stable
across runs and restarts as long as the file content does not change.

Two older shapes are still recognised for auditing pre-existing snapshots:

* legacy v1: ``chunk_0001`` (per-file counter)
* legacy v2: ``<12 hex path hash>:<start>-<end>``
"""

import hashlib
import re
from collections.abc import Iterable

from codebase_kb.core.models import ChunkIdFormat, ChunkIdMigration, MigrationPlan

CHUNK_ID_LENGTH = 16

_CURRENT = re.compile(r"^[a-f0-9]{16}$")
_LEGACY_V1 = re.compile(r"^chunk_\d{4}$")
_LEGACY_V2 = re.compile(r"^[a-f0-9]{12}:\d+-\d+$")


def generate_chunk_id(path: str, file_content_hash: str, start_line: int, end_line: int) -> str:
    """Returns the 16-hex-char identifier of a chunk."""
    key = f"{path}:{file_content_hash}:{start_line}-{end_line}"
    return hashlib.sha1(key.encode("utf-8")).hexdigest()[:CHUNK_ID_LENGTH]


def verify_chunk_id(
    chunk_id: str, path: str, file_content_hash: str, start_line: int, end_line: int
) -> bool:
    return chunk_id == generate_chunk_id(path, file_content_hash, start_line, end_line)


def is_valid_chunk_id_format(chunk_id: str) -> bool:
    return bool(_CURRENT.match(chunk_id))


def is_legacy_chunk_id(chunk_id: str) -> bool:
    return classify_chunk_id(chunk_id) in (ChunkIdFormat.LEGACY_V1, ChunkIdFormat.LEGACY_V2)


def classify_chunk_id(chunk_id: str) -> ChunkIdFormat:
    """Tags a chunk ID with the format generation it belongs to."""
    if _CURRENT.match(chunk_id):
        return ChunkIdFormat.CURRENT
    if _LEGACY_V1.match(chunk_id):
        return ChunkIdFormat.LEGACY_V1
    if _LEGACY_V2.match(chunk_id):
        return ChunkIdFormat.LEGACY_V2
    return ChunkIdFormat.UNRECOGNIZED


def plan_chunk_id_migration(
    records: Iterable[tuple[str, str, str | None, int, int]],
) -> MigrationPlan:
    """Computes the ID rewrites needed to bring stored chunks to the current format.

    Each record is ``(chunk_id, path, file_content_hash, start_line, end_line)``.
    Records without a content hash cannot be re-identified and are skipped.
    A current-format ID that does not verify (stale hash or range) is migrated too.
    """
    plan = MigrationPlan()
    for chunk_id, path, file_hash, start_line, end_line in records:
        if not file_hash:
            plan.skipped += 1
            continue

        expected = generate_chunk_id(path, file_hash, start_line, end_line)
        if chunk_id == expected:
            plan.unchanged += 1
            continue

        plan.migrations.append(
            ChunkIdMigration(
                old_chunk_id=chunk_id,
                new_chunk_id=expected,
                format=classify_chunk_id(chunk_id),
            )
        )
    return plan
