from typing import Any

from codebase_kb.core.ports import ISymbolStrategy
from codebase_kb.infrastructure.chunking.code import CodeChunker
from codebase_kb.infrastructure.extraction.blade import BladeStrategy
from codebase_kb.infrastructure.extraction.javascript import JavaScriptStrategy
from codebase_kb.infrastructure.extraction.markdown import MarkdownStrategy
from codebase_kb.infrastructure.extraction.php import PhpStrategy
from codebase_kb.infrastructure.extraction.python import PythonStrategy
from codebase_kb.infrastructure.extraction.vue import VueStrategy


class ComponentRegistry:
    """Registry pattern to dynamically map string names to class implementations."""

    _strategies: dict[str, type[ISymbolStrategy]] = {
        "php": PhpStrategy,
        "blade": BladeStrategy,
        "javascript": JavaScriptStrategy,
        "javascriptreact": JavaScriptStrategy,
        "typescript": JavaScriptStrategy,
        "typescriptreact": JavaScriptStrategy,
        "vue": VueStrategy,
        "python": PythonStrategy,
        "markdown": MarkdownStrategy,
    }

    _chunkers: dict[str, Any] = {
        "code": CodeChunker,
    }

    @classmethod
    def has_strategy(cls, language: str) -> bool:
        return language in cls._strategies

    @classmethod
    def get_strategy(cls, language: str) -> type[ISymbolStrategy]:
        if language not in cls._strategies:
            raise ValueError(f"Unknown language type: '{language}'")
        return cls._strategies[language]

    @classmethod
    def get_chunker(cls, name: str) -> Any:
        if name not in cls._chunkers:
            raise ValueError(f"Unknown chunker type: '{name}'")
        return cls._chunkers[name]

    @classmethod
    def languages(cls) -> list[str]:
        return sorted(cls._strategies)
