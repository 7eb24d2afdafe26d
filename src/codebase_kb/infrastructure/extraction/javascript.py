import re

from codebase_kb.core.models import Declaration, ImportRef, Usage
from codebase_kb.infrastructure.extraction.base import numbered_lines, split_names

_FUNCTION = re.compile(r"^\s*(?:export\s+)?(?:default\s+)?(?:async\s+)?function\*?\s+(\w+)")
_ARROW = re.compile(
    r"^\s*(?:export\s+)?(?:const|let|var)\s+(\w+)\s*(?::[^=]+)?="
    r"\s*(?:async\s+)?(?:\(|\w+\s*=>|function\b)"
)
_CLASS = re.compile(
    r"^\s*(?:export\s+)?(?:default\s+)?(?:abstract\s+)?class\s+(\w+)"
    r"(?:\s*<[^>]*>)?(?:\s+extends\s+([\w.]+)(?:<[^>]*>)?)?"
    r"(?:\s+implements\s+([\w.]+(?:\s*,\s*[\w.]+)*))?"
)
_INTERFACE = re.compile(r"^\s*(?:export\s+)?(?:declare\s+)?interface\s+(\w+)")
_TYPE = re.compile(r"^\s*(?:export\s+)?(?:declare\s+)?type\s+(\w+)\s*(?:<[^>]*>)?\s*=")
_ENUM = re.compile(r"^\s*(?:export\s+)?(?:declare\s+)?(?:const\s+)?enum\s+(\w+)")

_IMPORT_FROM = re.compile(r"^\s*import\s+.*?\s+from\s+['\"]([^'\"]+)['\"]")
_IMPORT_BARE = re.compile(r"^\s*import\s+['\"]([^'\"]+)['\"]")
_EXPORT_FROM = re.compile(r"^\s*export\s+.*?\s+from\s+['\"]([^'\"]+)['\"]")
# Closing line of a multi-line import list
_FROM_TAIL = re.compile(r"^\s*\}\s*from\s+['\"]([^'\"]+)['\"]")
_DYNAMIC_IMPORT = re.compile(r"\bimport\s*\(\s*['\"]([^'\"]+)['\"]\s*\)")
_REQUIRE = re.compile(r"\brequire\s*\(\s*['\"]([^'\"]+)['\"]\s*\)")

_HOOK = re.compile(r"\b(use[A-Z]\w*)\s*\(")
_COMPONENT = re.compile(r"<([A-Z]\w*)")
_NEW = re.compile(r"\bnew\s+([A-Z]\w*)")


class JavaScriptStrategy:
    """Heuristic JavaScript/TypeScript extraction, JSX included."""

    def declarations(self, content: str) -> list[Declaration]:
        declarations: list[Declaration] = []

        for number, line in numbered_lines(content):
            if m := _FUNCTION.match(line):
                declarations.append(Declaration(type="function", name=m.group(1), line=number))
            elif m := _ARROW.match(line):
                declarations.append(Declaration(type="function", name=m.group(1), line=number))
            elif m := _CLASS.match(line):
                declarations.append(
                    Declaration(
                        type="class",
                        name=m.group(1),
                        line=number,
                        extends=split_names(m.group(2))[0] if m.group(2) else None,
                        implements=split_names(m.group(3)) if m.group(3) else [],
                    )
                )
            elif m := _INTERFACE.match(line):
                declarations.append(Declaration(type="interface", name=m.group(1), line=number))
            elif m := _TYPE.match(line):
                declarations.append(Declaration(type="type", name=m.group(1), line=number))
            elif m := _ENUM.match(line):
                declarations.append(Declaration(type="enum", name=m.group(1), line=number))

        return declarations

    def imports(self, content: str) -> list[ImportRef]:
        imports: list[ImportRef] = []

        for number, line in numbered_lines(content):
            if m := _IMPORT_FROM.match(line) or _IMPORT_BARE.match(line) or _FROM_TAIL.match(line):
                imports.append(ImportRef(type="import", path=m.group(1), line=number))
            elif m := _EXPORT_FROM.match(line):
                imports.append(ImportRef(type="export", path=m.group(1), line=number))

            for m in _DYNAMIC_IMPORT.finditer(line):
                imports.append(ImportRef(type="import", path=m.group(1), line=number))
            for m in _REQUIRE.finditer(line):
                imports.append(ImportRef(type="require", path=m.group(1), line=number))

        return imports

    def usages(self, content: str) -> list[Usage]:
        usages: list[Usage] = []

        for number, line in numbered_lines(content):
            for pattern in (_HOOK, _COMPONENT, _NEW):
                for m in pattern.finditer(line):
                    usages.append(Usage(symbol=m.group(1), line=number))

        return usages
