import re

import markdown_it

from codebase_kb.core.models import Declaration, ImportRef, Usage

_IDENTIFIER = re.compile(r"^[A-Za-z_][\w.:\\]*$")


class MarkdownStrategy:
    """
    Documentation files: headings are declarations, link targets are imports
    and inline code spans naming an identifier are usages.
    Uses markdown-it-py tokens so code fences never produce false headings.
    """

    def __init__(self) -> None:
        self.md_parser = markdown_it.MarkdownIt()

    def declarations(self, content: str) -> list[Declaration]:
        declarations: list[Declaration] = []
        tokens = self.md_parser.parse(content)

        for i, token in enumerate(tokens):
            if token.type != "heading_open" or token.map is None:
                continue
            title = tokens[i + 1].content.strip() if i + 1 < len(tokens) else ""
            if title:
                declarations.append(Declaration(type="heading", name=title, line=token.map[0] + 1))

        return declarations

    def imports(self, content: str) -> list[ImportRef]:
        imports: list[ImportRef] = []

        for token, line in self._inline_children(content):
            if token.type == "link_open":
                href = token.attrGet("href")
                if isinstance(href, str) and href and not href.startswith("#"):
                    imports.append(ImportRef(type="link", path=href, line=line))
            elif token.type == "image":
                src = token.attrGet("src")
                if isinstance(src, str) and src:
                    imports.append(ImportRef(type="image", path=src, line=line))

        return imports

    def usages(self, content: str) -> list[Usage]:
        usages: list[Usage] = []

        for token, line in self._inline_children(content):
            if token.type == "code_inline" and _IDENTIFIER.match(token.content.strip()):
                usages.append(Usage(symbol=token.content.strip(), line=line))

        return usages

    def _inline_children(self, content: str):
        """Yields (child token, 1-indexed line of its block) for inline content."""
        for token in self.md_parser.parse(content):
            if token.type != "inline" or token.map is None or not token.children:
                continue
            line = token.map[0] + 1
            # Soft breaks advance the line within a paragraph
            for child in token.children:
                if child.type in ("softbreak", "hardbreak"):
                    line += 1
                    continue
                yield child, line
