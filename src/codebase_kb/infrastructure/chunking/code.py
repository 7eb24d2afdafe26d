import hashlib
import re
from collections.abc import Iterator
from typing import Any

from codebase_kb.config import BreakWeights
from codebase_kb.core.chunk_identity import generate_chunk_id
from codebase_kb.core.models import Chunk, Document

_CLASS_BOUNDARY = re.compile(
    r"^(?:function|class|trait|interface|enum)\s|^export\s+(?:default\s+)?(?:abstract\s+)?class\s"
)
_FUNCTION_BOUNDARY = re.compile(
    r"^(?:public|private|protected)\s+(?:function|static)"
    r"|^(?:async\s+)?def\s|^export\s+(?:async\s+)?function\s"
)
_BLOCK_END = re.compile(r"^\}\s*$")


class CodeChunker:
    """
    Line-range chunker for source files.
    Small files become one complete chunk. Larger files are cut into segments
    of at most ``max_chunk_lines`` lines, preferring the highest-weighted break
    line found within the last ``max - min`` lines of each segment.
    """

    def __init__(
        self,
        max_chunk_lines: int = 400,
        min_chunk_lines: int = 250,
        max_chunk_bytes: int = 200 * 1024,
        break_weights: BreakWeights | None = None,
        extractor: Any = None,
    ) -> None:
        self.max_chunk_lines = max_chunk_lines
        self.min_chunk_lines = min_chunk_lines
        self.max_chunk_bytes = max_chunk_bytes
        self.break_weights = break_weights or BreakWeights()
        self.extractor = extractor

    def process(self, document: Document) -> Iterator[Chunk]:
        """Yields the chunks of a document, partitioning [1, line_count] in order."""
        lines = document.content.split("\n")
        total_lines = len(lines)
        size = len(document.content.encode("utf-8"))

        if total_lines <= self.max_chunk_lines and size <= self.max_chunk_bytes:
            yield self._create_chunk(document, document.content, 1, total_lines, 0, True)
            return

        for index, (start, end) in enumerate(self.segments(lines)):
            text = "\n".join(lines[start - 1 : end])
            yield self._create_chunk(document, text, start, end, index, False)

    def segments(self, lines: list[str]) -> list[tuple[int, int]]:
        """1-indexed inclusive (start, end) ranges covering every line exactly once."""
        segments: list[tuple[int, int]] = []
        total_lines = len(lines)
        start = 1

        while start <= total_lines:
            end = min(start + self.max_chunk_lines - 1, total_lines)

            if end < total_lines:
                min_end = start + self.min_chunk_lines - 1
                break_point = self.find_break_point(lines, min_end, end)
                if break_point is not None:
                    end = break_point

            segments.append((start, end))
            start = end + 1

        return segments

    def find_break_point(self, lines: list[str], search_start: int, search_end: int) -> int | None:
        """Best break line in [search_start, search_end] (1-indexed), scanning backward.

        Ties keep the later line since only a strictly higher weight replaces it.
        """
        best_line: int | None = None
        best_weight = 0

        for number in range(search_end, search_start - 1, -1):
            weight = self.line_weight(lines[number - 1])
            if weight > best_weight:
                best_weight = weight
                best_line = number

        return best_line

    def line_weight(self, line: str) -> int:
        stripped = line.strip()
        if not stripped:
            return self.break_weights.empty_line
        if _CLASS_BOUNDARY.match(stripped):
            return self.break_weights.class_boundary
        if _FUNCTION_BOUNDARY.match(stripped):
            return self.break_weights.function_boundary
        if _BLOCK_END.match(stripped):
            return self.break_weights.block_end
        return 0

    def _create_chunk(
        self,
        document: Document,
        text: str,
        start: int,
        end: int,
        index: int,
        is_complete_file: bool,
    ) -> Chunk:
        chunk = Chunk(
            chunk_id=generate_chunk_id(document.path, document.content_hash, start, end),
            path=document.path,
            file_content_hash=document.content_hash,
            start_line=start,
            end_line=end,
            chunk_index=index,
            is_complete_file=is_complete_file,
            content=text,
            chunk_content_hash=hashlib.sha1(text.encode("utf-8")).hexdigest(),
            chunk_bytes=len(text.encode("utf-8")),
            chunk_lines=end - start + 1,
        )

        if self.extractor is not None:
            chunk.symbols_declared = self.extractor.extract_declarations(text, document.language)
            chunk.symbols_used = self.extractor.extract_usages(text, document.language)
            chunk.imports = self.extractor.extract_imports(text, document.language)

        return chunk
