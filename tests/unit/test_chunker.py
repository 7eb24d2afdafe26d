import hashlib

import pytest

from codebase_kb.config import BreakWeights
from codebase_kb.core.chunk_identity import generate_chunk_id
from codebase_kb.core.models import Document
from codebase_kb.infrastructure.chunking.code import CodeChunker
from codebase_kb.infrastructure.extraction.extractor import SymbolExtractor


def _document(content: str, path: str = "app/Example.php", language: str = "php") -> Document:
    content_hash = hashlib.sha1(content.encode("utf-8")).hexdigest()
    return Document(path=path, content=content, content_hash=content_hash, language=language)


def _assert_partition(chunks, line_count):
    ordered = sorted(chunks, key=lambda c: c.start_line)
    assert ordered[0].start_line == 1
    assert ordered[-1].end_line == line_count
    for previous, current in zip(ordered, ordered[1:]):
        assert current.start_line == previous.end_line + 1


def test_small_file_is_single_complete_chunk():
    """Test a file within both limits produces exactly one complete chunk."""
    content = "<?php\n\nclass A {}\n"
    chunks = list(CodeChunker().process(_document(content)))

    assert len(chunks) == 1
    chunk = chunks[0]
    assert chunk.is_complete_file
    assert chunk.start_line == 1
    assert chunk.end_line == 4
    assert chunk.content == content
    assert chunk.chunk_lines == 4
    assert chunk.chunk_index == 0


def test_chunk_fields_are_derived_from_content():
    """Test ID, hashes and sizes of a chunk."""
    document = _document("a\nb\nc")
    chunk = next(CodeChunker().process(document))

    assert chunk.chunk_id == generate_chunk_id(document.path, document.content_hash, 1, 3)
    assert chunk.file_content_hash == document.content_hash
    assert chunk.chunk_content_hash == hashlib.sha1(b"a\nb\nc").hexdigest()
    assert chunk.chunk_bytes == 5


def test_thousand_line_file_without_break_points_yields_three_chunks():
    """Test raw cuts at max_chunk_lines when no break line exists."""
    lines = [f"statement_{i};" for i in range(1, 1001)]
    chunks = list(CodeChunker().process(_document("\n".join(lines))))

    assert [(c.start_line, c.end_line) for c in chunks] == [(1, 400), (401, 800), (801, 1000)]
    assert [c.chunk_index for c in chunks] == [0, 1, 2]
    assert not any(c.is_complete_file for c in chunks)


def test_thousand_line_file_splits_at_highest_weighted_break():
    """Test boundaries land on the best break line inside each search window."""
    lines = [f"statement_{i};" for i in range(1, 1001)]
    lines[299] = ""  # line 300: blank, weight 10
    lines[349] = "}"  # line 350: block end, weight 7
    lines[649] = "class Second"  # line 650: class boundary, weight 9
    chunks = list(CodeChunker().process(_document("\n".join(lines))))

    assert [(c.start_line, c.end_line) for c in chunks] == [(1, 300), (301, 650), (651, 1000)]
    _assert_partition(chunks, 1000)


def test_ties_keep_the_later_line():
    """Test equal-weight break lines resolve to the one closest to the window end."""
    chunker = CodeChunker(max_chunk_lines=10, min_chunk_lines=5)
    lines = ["x"] * 20
    lines[5] = ""  # line 6
    lines[8] = ""  # line 9

    assert chunker.find_break_point(lines, 5, 10) == 9


def test_find_break_point_without_candidates():
    """Test no break point is reported when every line weighs zero."""
    chunker = CodeChunker()
    assert chunker.find_break_point(["x", "y", "z"], 1, 3) is None


@pytest.mark.parametrize(
    "line,weight",
    [
        ("", 10),
        ("   ", 10),
        ("class Foo extends Bar", 9),
        ("export default class App {", 9),
        ("    public function handle()", 8),
        ("def run(self):", 8),
        ("}", 7),
        ("$x = 1;", 0),
    ],
)
def test_line_weights(line, weight):
    """Test the default break weight of each line kind."""
    assert CodeChunker().line_weight(line) == weight


def test_custom_break_weights():
    """Test configured weights change break preference."""
    chunker = CodeChunker(break_weights=BreakWeights(empty_line=1, block_end=20))
    assert chunker.line_weight("}") == 20
    assert chunker.line_weight("") == 1


def test_oversized_bytes_force_splitting():
    """Test a short file above max_chunk_bytes is still split."""
    content = "\n".join("x" * 100 for _ in range(30))
    chunker = CodeChunker(max_chunk_lines=10, min_chunk_lines=5, max_chunk_bytes=1000)
    chunks = list(chunker.process(_document(content)))

    assert len(chunks) == 3
    _assert_partition(chunks, 30)


def test_chunking_is_deterministic():
    """Test identical input produces identical IDs and boundaries."""
    content = "\n".join(f"line {i}" if i % 37 else "" for i in range(900))
    document = _document(content)
    first = [(c.chunk_id, c.start_line, c.end_line) for c in CodeChunker().process(document)]
    second = [(c.chunk_id, c.start_line, c.end_line) for c in CodeChunker().process(document)]

    assert first == second


def test_extractor_populates_chunk_symbols():
    """Test chunk-level declarations, usages and imports when an extractor is set."""
    content = "<?php\nuse App\\Models\\User;\n\nclass A\n{\n    public function b() { return new User(); }\n}\n"
    chunker = CodeChunker(extractor=SymbolExtractor())
    chunk = next(chunker.process(_document(content)))

    assert [d.name for d in chunk.symbols_declared] == ["A", "b"]
    assert [u.symbol for u in chunk.symbols_used] == ["User"]
    assert [i.path for i in chunk.imports] == ["App\\Models\\User"]
