import re

from codebase_kb.core.models import Declaration, ImportRef, Usage
from codebase_kb.infrastructure.extraction.base import line_of, numbered_lines, shift_lines
from codebase_kb.infrastructure.extraction.php import PhpStrategy

_DIRECTIVES = (
    ("extends", re.compile(r"@extends\s*\(\s*['\"]([^'\"]+)['\"]", re.I)),
    ("include", re.compile(r"@include\w*\s*\(\s*(?:[^,'\"]+,\s*)?['\"]([^'\"]+)['\"]", re.I)),
    ("component", re.compile(r"@component\s*\(\s*['\"]([^'\"]+)['\"]", re.I)),
    ("livewire", re.compile(r"@livewire\s*\(\s*['\"]([^'\"]+)['\"]", re.I)),
)
_X_COMPONENT = re.compile(r"<x-([a-z0-9\-.:]+)", re.I)
_LIVEWIRE_TAG = re.compile(r"<livewire:([a-z0-9\-.]+)", re.I)
_PHP_BLOCK = re.compile(r"@php\b(.*?)@endphp", re.S | re.I)


class BladeStrategy:
    """Blade templates: view references plus the PHP embedded in @php blocks."""

    def __init__(self) -> None:
        self.php = PhpStrategy()

    def declarations(self, content: str) -> list[Declaration]:
        declarations: list[Declaration] = []
        for first_line, block in self._php_blocks(content):
            declarations.extend(shift_lines(self.php.declarations(block), first_line))
        return declarations

    def imports(self, content: str) -> list[ImportRef]:
        imports: list[ImportRef] = []

        for number, line in numbered_lines(content):
            for kind, pattern in _DIRECTIVES:
                for m in pattern.finditer(line):
                    imports.append(ImportRef(type=kind, path=m.group(1), line=number))
            for m in _X_COMPONENT.finditer(line):
                # <x-forms.input> renders the view components.forms.input
                imports.append(
                    ImportRef(type="component", path=f"components.{m.group(1)}", line=number)
                )
            for m in _LIVEWIRE_TAG.finditer(line):
                imports.append(ImportRef(type="livewire", path=m.group(1), line=number))

        for first_line, block in self._php_blocks(content):
            imports.extend(shift_lines(self.php.imports(block), first_line))

        return imports

    def usages(self, content: str) -> list[Usage]:
        usages: list[Usage] = []
        for first_line, block in self._php_blocks(content):
            usages.extend(shift_lines(self.php.usages(block), first_line))
        return usages

    @staticmethod
    def _php_blocks(content: str) -> list[tuple[int, str]]:
        """(line of the block's first character, block text) for each @php ... @endphp."""
        return [(line_of(content, m.start(1)), m.group(1)) for m in _PHP_BLOCK.finditer(content)]
