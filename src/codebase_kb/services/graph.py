import posixpath
import time
from collections.abc import Iterable
from datetime import UTC, datetime

from loguru import logger

from codebase_kb.config import GraphConfig
from codebase_kb.core.graph import SymbolGraph
from codebase_kb.core.models import Chunk, Declaration, FileRecord, ImportRef
from codebase_kb.infrastructure.storage.reader import KnowledgeBaseReader

_JS_EXTENSIONS = ("", ".js", ".ts", ".vue", ".jsx", ".tsx", ".mjs")
_INHERITING_TYPES = {"class", "trait", "interface", "enum"}
_BLADE_VIEW_IMPORTS = {"extends", "include", "component"}
_UNINDEXED_DECLARATIONS = {"heading"}
_BLADE_VIEW_ROOT = "resources/views"
_JS_ALIAS_ROOT = "resources/js"


class SymbolGraphBuilder:
    """Derives the file graph from the manifest and chunks of one snapshot."""

    def __init__(self, config: GraphConfig | None = None) -> None:
        self.config = config or GraphConfig()
        self.weights = self.config.relationship_weights

    def build(self, files: Iterable[FileRecord], chunks: Iterable[Chunk] = ()) -> SymbolGraph:
        started = time.perf_counter()
        graph = SymbolGraph()
        truncated = False

        for record in sorted(files, key=lambda f: f.path):
            if record.is_excluded or record.is_binary:
                continue
            if graph.node_count >= self.config.max_nodes:
                truncated = True
                break
            graph.add_file(
                record.path,
                declarations=record.symbols_declared,
                imports=record.imports,
                language=record.language,
                size=record.size_bytes,
            )

        self._merge_chunks(graph, chunks)
        self._add_edges(graph)

        duration_ms = round((time.perf_counter() - started) * 1000, 2)
        graph.metadata = {
            "built_at": datetime.now(UTC).isoformat(),
            "build_duration_ms": duration_ms,
            "node_count": graph.node_count,
            "truncated": truncated,
        }
        logger.info(
            "Symbol graph built: {} nodes, {} edges in {}ms",
            graph.node_count,
            graph.graph.number_of_edges(),
            duration_ms,
        )
        return graph

    def build_from_snapshot(self, reader: KnowledgeBaseReader) -> SymbolGraph:
        graph = self.build(reader.iter_files(), reader.iter_chunks())
        graph.metadata["scan_id"] = reader.scan_id
        return graph

    @staticmethod
    def _merge_chunks(graph: SymbolGraph, chunks: Iterable[Chunk]) -> None:
        """Chunk usages are appended; chunk imports are added when their path is new."""
        for chunk in chunks:
            if not graph.has_file(chunk.path):
                continue
            node = graph.node(chunk.path)
            node["usages"].extend(chunk.symbols_used)
            known = {i.path for i in node["imports"]}
            for ref in chunk.imports:
                if ref.path not in known:
                    node["imports"].append(ref)
                    known.add(ref.path)

    def _add_edges(self, graph: SymbolGraph) -> None:
        paths = list(graph.graph.nodes)
        resolver = _ImportResolver(paths)
        symbol_index = self._symbol_index(graph)

        for source in paths:
            node = graph.node(source)

            for ref in node["imports"]:
                target = resolver.resolve(ref, source)
                if target is not None:
                    graph.add_edge(source, target, "imports", self.weights["imports"])

            for usage in node["usages"]:
                name = usage.symbol.split("::", 1)[0]
                for target in symbol_index.get(name, []):
                    graph.add_edge(source, target, "references", self.weights["references"])

            for declaration in node["declarations"]:
                if declaration.type in _INHERITING_TYPES:
                    self._add_inheritance_edges(graph, source, declaration, symbol_index)

    def _add_inheritance_edges(
        self,
        graph: SymbolGraph,
        source: str,
        declaration: Declaration,
        symbol_index: dict[str, list[str]],
    ) -> None:
        parents = [declaration.extends] if declaration.extends else []
        for relationship, names in (
            ("extends", parents),
            ("implements", declaration.implements),
            ("uses_trait", declaration.uses),
        ):
            for name in names:
                for target in symbol_index.get(name, []):
                    graph.add_edge(source, target, relationship, self.weights[relationship])

    @staticmethod
    def _symbol_index(graph: SymbolGraph) -> dict[str, list[str]]:
        index: dict[str, list[str]] = {}
        for path, data in graph.graph.nodes(data=True):
            for declaration in data["declarations"]:
                if declaration.name and declaration.type not in _UNINDEXED_DECLARATIONS:
                    files = index.setdefault(declaration.name, [])
                    if path not in files:
                        files.append(path)
        return index


class _ImportResolver:
    """Maps import statements to graph node paths, per language convention."""

    def __init__(self, paths: list[str]) -> None:
        self.paths = set(paths)
        self.ordered = sorted(paths)
        self.lowered = [(p.lower(), p) for p in self.ordered]

    def resolve(self, ref: ImportRef, source: str) -> str | None:
        target = ref.path.strip()
        if not target or ref.type == "namespace":
            return None

        if ref.type in ("import", "from") and source.endswith((".py", ".pyi")):
            resolved = self._python(target, source)
        elif "\\" in target:
            resolved = self._php(target)
        elif ref.type in _BLADE_VIEW_IMPORTS and source.endswith(".blade.php"):
            resolved = self._blade_view(target)
        elif target.startswith(("./", "../", "@/")):
            resolved = self._javascript(target, source)
        elif ref.type in ("link", "image"):
            resolved = self._relative_file(target, source)
        else:
            resolved = None

        return resolved if resolved != source else None

    def _php(self, target: str) -> str | None:
        expected = target.strip("\\").replace("\\", "/") + ".php"
        candidates = [
            "app/" + expected.removeprefix("App/"),
            expected,
        ]
        for candidate in candidates:
            suffix = candidate.lower()
            for lowered, path in self.lowered:
                if lowered == suffix or lowered.endswith("/" + suffix):
                    return path

        # Fall back to a file named after the class
        class_name = posixpath.basename(expected)
        return next((p for p in self.ordered if posixpath.basename(p) == class_name), None)

    def _javascript(self, target: str, source: str) -> str | None:
        if target.startswith("@/"):
            base = posixpath.join(_JS_ALIAS_ROOT, target[2:])
        else:
            base = posixpath.normpath(posixpath.join(posixpath.dirname(source), target))

        for extension in _JS_EXTENSIONS:
            if base + extension in self.paths:
                return base + extension
            index = f"{base}/index{extension or '.js'}"
            if index in self.paths:
                return index
        return None

    def _python(self, target: str, source: str) -> str | None:
        dots = len(target) - len(target.lstrip("."))
        module = target[dots:].replace(".", "/")

        if dots:
            package = posixpath.dirname(source)
            for _ in range(dots - 1):
                package = posixpath.dirname(package)
            base = posixpath.join(package, module) if module else package
            candidates = [f"{base}.py", f"{base}/__init__.py"]
            return next((c for c in candidates if c in self.paths), None)

        # Absolute module: match by suffix so src/ layouts resolve too
        for suffix in (f"{module}.py", f"{module}/__init__.py"):
            for path in self.ordered:
                if path == suffix or path.endswith("/" + suffix):
                    return path
        return None

    def _blade_view(self, target: str) -> str | None:
        view = target.replace(".", "/")
        candidate = f"{_BLADE_VIEW_ROOT}/{view}.blade.php"
        if candidate in self.paths:
            return candidate
        return next((p for p in self.ordered if p.endswith(f"/{view}.blade.php")), None)

    def _relative_file(self, target: str, source: str) -> str | None:
        if "://" in target or target.startswith("mailto:"):
            return None
        target = target.split("#", 1)[0].split("?", 1)[0]
        if not target:
            return None
        if target.startswith("/"):
            resolved = target.lstrip("/")
        else:
            resolved = posixpath.normpath(posixpath.join(posixpath.dirname(source), target))
        return resolved if resolved in self.paths else None
