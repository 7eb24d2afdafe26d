import re

from codebase_kb.core.models import Declaration, ImportRef, Usage
from codebase_kb.infrastructure.extraction.base import dedupe_usages, line_of, shift_lines
from codebase_kb.infrastructure.extraction.javascript import JavaScriptStrategy

_SCRIPT = re.compile(r"<script\b([^>]*)>(.*?)</script>", re.S | re.I)
# Greedy so nested <template #slot> tags stay inside the outer template
_TEMPLATE = re.compile(r"<template\b[^>]*>(.*)</template>", re.S | re.I)

_COMPONENT_NAME = re.compile(r"defineComponent\s*\(\s*\{[^}]*?\bname\s*:\s*['\"](\w+)['\"]", re.S)
_SETUP_REF = re.compile(r"\bconst\s+(\w+)\s*=\s*(?:ref|reactive|computed)\b")
_PASCAL_TAG = re.compile(r"<([A-Z]\w+)")
_KEBAB_TAG = re.compile(r"<([a-z]+-[a-z0-9-]+)")


class VueStrategy:
    """Single-file components: script blocks go through the JavaScript strategy."""

    def __init__(self) -> None:
        self.js = JavaScriptStrategy()

    def declarations(self, content: str) -> list[Declaration]:
        declarations: list[Declaration] = []

        if m := _COMPONENT_NAME.search(content):
            declarations.append(
                Declaration(type="component", name=m.group(1), line=line_of(content, m.start(1)))
            )

        for attributes, first_line, script in self._scripts(content):
            if "setup" in attributes:
                for m in _SETUP_REF.finditer(script):
                    declarations.append(
                        Declaration(
                            type="ref",
                            name=m.group(1),
                            line=first_line + line_of(script, m.start(1)) - 1,
                        )
                    )
            declarations.extend(shift_lines(self.js.declarations(script), first_line))

        return declarations

    def imports(self, content: str) -> list[ImportRef]:
        imports: list[ImportRef] = []
        for _, first_line, script in self._scripts(content):
            imports.extend(shift_lines(self.js.imports(script), first_line))
        return imports

    def usages(self, content: str) -> list[Usage]:
        m = _TEMPLATE.search(content)
        if m is None:
            return []

        template, offset = m.group(1), m.start(1)
        usages = [
            Usage(symbol=tag.group(1), line=line_of(content, offset + tag.start(1)))
            for pattern in (_PASCAL_TAG, _KEBAB_TAG)
            for tag in pattern.finditer(template)
        ]
        usages.sort(key=lambda u: u.line)
        return dedupe_usages(usages)

    @staticmethod
    def _scripts(content: str) -> list[tuple[str, int, str]]:
        return [
            (m.group(1).lower(), line_of(content, m.start(2)), m.group(2))
            for m in _SCRIPT.finditer(content)
        ]
