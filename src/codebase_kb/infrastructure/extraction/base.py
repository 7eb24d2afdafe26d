import re
from collections.abc import Iterator
from typing import TypeVar

from codebase_kb.core.models import Declaration, ImportRef, Usage

T = TypeVar("T", Declaration, ImportRef, Usage)


def numbered_lines(content: str, first_line: int = 1) -> Iterator[tuple[int, str]]:
    """Yields (line_number, text) pairs, 1-indexed unless an offset is given."""
    for offset, line in enumerate(content.split("\n")):
        yield first_line + offset, line


def short_name(qualified: str) -> str:
    """``App\\Models\\User`` -> ``User``; ``models.User`` -> ``User``."""
    return re.split(r"[\\.]", qualified.strip().strip("\\"))[-1]


def split_names(raw: str) -> list[str]:
    return [short_name(part) for part in raw.split(",") if part.strip()]


def line_of(content: str, index: int) -> int:
    """1-indexed line containing character ``index``."""
    return content.count("\n", 0, index) + 1


def shift_lines(items: list[T], first_line: int) -> list[T]:
    """Re-bases line numbers of items extracted from an embedded block."""
    return [item.model_copy(update={"line": item.line + first_line - 1}) for item in items]


def dedupe_usages(usages: list[Usage]) -> list[Usage]:
    seen: set[tuple[str, int]] = set()
    unique: list[Usage] = []
    for usage in usages:
        key = (usage.symbol, usage.line)
        if key not in seen:
            seen.add(key)
            unique.append(usage)
    return unique
