from codebase_kb.core.models import Declaration, ImportRef, Usage
from codebase_kb.core.ports import ISymbolStrategy
from codebase_kb.core.registry import ComponentRegistry

USAGE_LIMIT = 50


class SymbolExtractor:
    """Language-dispatching facade over the per-language strategies.

    Languages without a registered strategy yield empty results, never errors.
    Strategies are instantiated once per language and reused.
    """

    def __init__(self, usage_limit: int = USAGE_LIMIT) -> None:
        self.usage_limit = usage_limit
        self._instances: dict[str, ISymbolStrategy] = {}

    def extract_declarations(self, content: str, language: str) -> list[Declaration]:
        strategy = self._strategy(language)
        return strategy.declarations(content) if strategy else []

    def extract_imports(self, content: str, language: str) -> list[ImportRef]:
        strategy = self._strategy(language)
        return strategy.imports(content) if strategy else []

    def extract_usages(self, content: str, language: str) -> list[Usage]:
        strategy = self._strategy(language)
        if strategy is None:
            return []
        return strategy.usages(content)[: self.usage_limit]

    def _strategy(self, language: str) -> ISymbolStrategy | None:
        if not ComponentRegistry.has_strategy(language):
            return None
        if language not in self._instances:
            self._instances[language] = ComponentRegistry.get_strategy(language)()
        return self._instances[language]
