import re

from codebase_kb.core.models import Declaration, ImportRef, Usage
from codebase_kb.infrastructure.extraction.base import numbered_lines, short_name

_CLASS = re.compile(r"^(\s*)class\s+(\w+)\s*(?:\[[^\]]*\])?\s*(?:\(([^)]*)\))?\s*:")
_DEF = re.compile(r"^(\s*)(?:async\s+)?def\s+(\w+)\s*[\[(]")
_CONSTANT = re.compile(r"^([A-Z][A-Z0-9_]*)\s*(?::[^=]+)?=(?!=)")

_IMPORT = re.compile(r"^\s*import\s+(.+?)\s*(?:#.*)?$")
_FROM_IMPORT = re.compile(r"^\s*from\s+(\.*[\w.]*)\s+import\s+")
_ALIAS = re.compile(r"^([\w.]+)(?:\s+as\s+(\w+))?$")

_CALL = re.compile(r"(?<![\w.])([A-Z]\w*)\s*\(")

# Bases that carry no type relationship worth an inheritance edge
_IGNORED_BASES = {"object", "Protocol", "Generic", "ABC", "Enum", "NamedTuple", "TypedDict"}


def _bases(raw: str | None) -> list[str]:
    if not raw:
        return []
    names = []
    for part in raw.split(","):
        part = part.strip()
        if not part or "=" in part or part.startswith("*"):
            continue
        name = short_name(part.split("[", 1)[0])
        if name and name not in _IGNORED_BASES:
            names.append(name)
    return names


class PythonStrategy:
    """Heuristic Python extraction. First base is ``extends``, the rest are ``implements``."""

    def declarations(self, content: str) -> list[Declaration]:
        declarations: list[Declaration] = []

        for number, line in numbered_lines(content):
            if m := _CLASS.match(line):
                bases = _bases(m.group(3))
                declarations.append(
                    Declaration(
                        type="class",
                        name=m.group(2),
                        line=number,
                        extends=bases[0] if bases else None,
                        implements=bases[1:],
                    )
                )
            elif m := _DEF.match(line):
                kind = "method" if m.group(1) else "function"
                declarations.append(Declaration(type=kind, name=m.group(2), line=number))
            elif m := _CONSTANT.match(line):
                declarations.append(Declaration(type="const", name=m.group(1), line=number))

        return declarations

    def imports(self, content: str) -> list[ImportRef]:
        imports: list[ImportRef] = []

        for number, line in numbered_lines(content):
            if m := _FROM_IMPORT.match(line):
                imports.append(ImportRef(type="from", path=m.group(1), line=number))
            elif m := _IMPORT.match(line):
                for part in m.group(1).split(","):
                    if alias := _ALIAS.match(part.strip()):
                        path, name = alias.group(1), alias.group(2)
                        imports.append(ImportRef(type="import", path=path, alias=name, line=number))

        return imports

    def usages(self, content: str) -> list[Usage]:
        usages: list[Usage] = []

        for number, line in numbered_lines(content):
            code = line.split("#", 1)[0]
            if _CLASS.match(code) or _DEF.match(code):
                continue
            for m in _CALL.finditer(code):
                usages.append(Usage(symbol=m.group(1), line=number))

        return usages
