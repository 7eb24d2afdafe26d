"""Compound-aware file extension resolution."""

import posixpath

# Checked before the last dot segment, in this order
COMPOUND_EXTENSIONS = (
    "blade.php",
    "min.js",
    "min.css",
    "d.ts",
    "spec.ts",
    "spec.js",
    "test.ts",
    "test.js",
    "bundle.js",
    "chunk.js",
)


def normalize_path(path: str) -> str:
    """Forward-slash, repo-relative form of a path."""
    normalized = path.replace("\\", "/")
    while normalized.startswith("./"):
        normalized = normalized[2:]
    return normalized.lstrip("/")


def resolve_extension(path: str) -> str | None:
    """Returns the extension without a leading dot, or None.

    Compound extensions such as ``blade.php`` are treated as one unit.
    A leading-dot file name (``.env``) has no extension unless it has a further dot.
    """
    name = posixpath.basename(normalize_path(path))
    lowered = name.lower()

    for compound in COMPOUND_EXTENSIONS:
        suffix = "." + compound
        if lowered.endswith(suffix) and len(lowered) > len(suffix):
            return compound

    stem = name.lstrip(".")
    if "." not in stem:
        return None
    extension = stem.rsplit(".", 1)[1]
    return extension or None
