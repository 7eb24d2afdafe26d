import re

from codebase_kb.core.models import Declaration, ImportRef, Usage
from codebase_kb.infrastructure.extraction.base import numbered_lines, short_name, split_names

_CLASS = re.compile(
    r"^\s*(?:(?:abstract|final|readonly)\s+)*(class|trait|interface|enum)\s+(\w+)(.*)$", re.I
)
_EXTENDS = re.compile(r"\bextends\s+([\w\\]+(?:\s*,\s*[\w\\]+)*)", re.I)
_IMPLEMENTS = re.compile(r"\bimplements\s+([\w\\]+(?:\s*,\s*[\w\\]+)*)", re.I)
_FUNCTION = re.compile(
    r"^\s*((?:(?:public|private|protected|static|abstract|final)\s+)*)function\s+&?(\w+)\s*\(",
    re.I,
)
_CONST = re.compile(r"^\s*(?:(?:public|private|protected|final)\s+)*const\s+(\w+)\s*=", re.I)
_PROPERTY = re.compile(
    r"^\s*(?:public|private|protected)\s+(?:static\s+)?(?:readonly\s+)?(?:\??[\w\\|]+\s+)?\$(\w+)",
    re.I,
)
_TRAIT_USE = re.compile(r"^\s+use\s+([\w\\]+(?:\s*,\s*[\w\\]+)*)\s*[;{]")

_USE = re.compile(r"^\s*use\s+(?:function\s+|const\s+)?([^;]+);", re.I)
_ALIAS = re.compile(r"^(.+?)\s+as\s+(\w+)$", re.I)
_GROUP = re.compile(r"^(.+?)\\\{(.+)\}$")
_NAMESPACE = re.compile(r"^\s*namespace\s+([^;{\s]+)\s*[;{]", re.I)

_STATIC_CALL = re.compile(r"\b([A-Z]\w*)::(\w+)\s*\(")
_NEW = re.compile(r"\bnew\s+\\?([A-Z][\w\\]*)")
_TYPE_HINT = re.compile(r"[:(,|]\s*\??\\?([A-Z][\w\\]*)\s+\$|\)\s*:\s*\??\\?([A-Z][\w\\]*)")

_SCALARS = {"string", "int", "float", "bool", "array", "object", "mixed", "void", "null", "self", "static"}  # fmt: skip


class PhpStrategy:
    """Heuristic PHP extraction: classes, members, use statements and references."""

    def declarations(self, content: str) -> list[Declaration]:
        declarations: list[Declaration] = []
        current_class: Declaration | None = None

        for number, line in numbered_lines(content):
            if m := _CLASS.match(line):
                kind, name, rest = m.group(1).lower(), m.group(2), m.group(3)
                extends = _EXTENDS.search(rest)
                implements = _IMPLEMENTS.search(rest)
                parents = split_names(extends.group(1)) if extends else []
                contracts = split_names(implements.group(1)) if implements else []
                if kind == "interface":
                    # Interfaces may extend several interfaces
                    contracts, parents = parents + contracts, []
                current_class = Declaration(
                    type=kind,
                    name=name,
                    line=number,
                    extends=parents[0] if parents else None,
                    implements=contracts,
                )
                declarations.append(current_class)
                continue

            if current_class is not None and (m := _TRAIT_USE.match(line)):
                current_class.uses.extend(split_names(m.group(1)))
                continue

            if m := _FUNCTION.match(line):
                modifiers = m.group(1).lower()
                is_method = any(v in modifiers for v in ("public", "private", "protected"))
                kind = "method" if is_method else "function"
                declarations.append(Declaration(type=kind, name=m.group(2), line=number))
            elif m := _CONST.match(line):
                declarations.append(Declaration(type="const", name=m.group(1), line=number))
            elif m := _PROPERTY.match(line):
                declarations.append(Declaration(type="property", name=m.group(1), line=number))

        return declarations

    def imports(self, content: str) -> list[ImportRef]:
        imports: list[ImportRef] = []
        in_class = False

        for number, line in numbered_lines(content):
            if _CLASS.match(line):
                in_class = True
            elif in_class and _TRAIT_USE.match(line):
                # Trait use inside a class body, reported on the declaration instead
                continue

            if m := _USE.match(line):
                path = m.group(1).strip()
                alias = None
                if alias_match := _ALIAS.match(path):
                    path, alias = alias_match.group(1).strip(), alias_match.group(2)

                if group := _GROUP.match(path):
                    base = group.group(1)
                    for item in (i.strip() for i in group.group(2).split(",")):
                        if item:
                            path = f"{base}\\{item}"
                            imports.append(ImportRef(type="use", path=path, line=number))
                else:
                    imports.append(ImportRef(type="use", path=path, alias=alias, line=number))

            if m := _NAMESPACE.match(line):
                imports.append(ImportRef(type="namespace", path=m.group(1).strip(), line=number))

        return imports

    def usages(self, content: str) -> list[Usage]:
        usages: list[Usage] = []

        for number, line in numbered_lines(content):
            for m in _STATIC_CALL.finditer(line):
                usages.append(Usage(symbol=f"{m.group(1)}::{m.group(2)}", line=number))
            for m in _NEW.finditer(line):
                usages.append(Usage(symbol=short_name(m.group(1)), line=number))
            for m in _TYPE_HINT.finditer(line):
                hint = short_name(m.group(1) or m.group(2))
                if hint.lower() not in _SCALARS:
                    usages.append(Usage(symbol=hint, line=number))

        return usages
