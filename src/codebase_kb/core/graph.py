"""File-level symbol relationship graph.

Nodes are repository paths carrying the symbols declared and used in the file;
a directed edge ``a -> b`` means ``a`` depends on ``b`` (imports it, extends a
class declared in it, references one of its symbols, ...). Traversals look at
both directions, reporting incoming relationships with a ``_by`` suffix.
"""

from collections import deque
from datetime import UTC, datetime
from typing import Any

import networkx as nx

from codebase_kb.core.models import (
    ClusterMember,
    Declaration,
    GraphStats,
    ImportRef,
    RelatedFile,
    Usage,
)

CLUSTER_DEPTH = 3


class SymbolGraph:
    """Read-mostly wrapper over a ``networkx.DiGraph``; built once per snapshot."""

    def __init__(
        self, graph: nx.DiGraph | None = None, metadata: dict[str, Any] | None = None
    ) -> None:
        self.graph = graph if graph is not None else nx.DiGraph()
        self.metadata = metadata or {}

    @classmethod
    def empty(cls) -> "SymbolGraph":
        return cls(metadata={"empty": True, "built_at": datetime.now(UTC).isoformat()})

    def add_file(
        self,
        path: str,
        declarations: list[Declaration] | None = None,
        usages: list[Usage] | None = None,
        imports: list[ImportRef] | None = None,
        language: str = "plaintext",
        size: int = 0,
    ) -> None:
        self.graph.add_node(
            path,
            declarations=list(declarations or []),
            usages=list(usages or []),
            imports=list(imports or []),
            language=language,
            size=size,
        )

    def add_edge(self, source: str, target: str, relationship: str, weight: float) -> bool:
        """Adds or strengthens an edge. A weaker relationship never replaces a stronger one."""
        if source == target:
            return False
        existing = self.graph.get_edge_data(source, target)
        if existing is not None and existing["weight"] >= weight:
            return False
        self.graph.add_edge(source, target, relationship=relationship, weight=weight)
        return True

    def has_file(self, path: str) -> bool:
        return path in self.graph

    @property
    def node_count(self) -> int:
        return self.graph.number_of_nodes()

    def node(self, path: str) -> dict[str, Any]:
        return self.graph.nodes[path]

    def neighborhood(self, path: str, depth: int = 1) -> list[RelatedFile]:
        """Files reachable from ``path`` within ``depth`` hops in either direction.

        Breadth-first; at each node outgoing edges are expanded before incoming
        ones and every file is reported once, at the depth it was first seen.
        Sorted by depth ascending, then weight descending.
        """
        if path not in self.graph:
            return []

        related: list[RelatedFile] = []
        visited = {path}
        queue: deque[tuple[str, int]] = deque([(path, 0)])

        while queue:
            current, current_depth = queue.popleft()
            if current_depth >= depth:
                continue

            for target, edge in self.graph.succ[current].items():
                if target not in visited:
                    visited.add(target)
                    related.append(
                        RelatedFile(
                            path=target,
                            relationship=edge["relationship"],
                            depth=current_depth + 1,
                            weight=edge["weight"],
                            direction="outgoing",
                        )
                    )
                    queue.append((target, current_depth + 1))

            for source, edge in self.graph.pred[current].items():
                if source not in visited:
                    visited.add(source)
                    related.append(
                        RelatedFile(
                            path=source,
                            relationship=f"{edge['relationship']}_by",
                            depth=current_depth + 1,
                            weight=edge["weight"],
                            direction="incoming",
                        )
                    )
                    queue.append((source, current_depth + 1))

        return sorted(related, key=lambda r: (r.depth, -r.weight))

    def shortest_path(self, source: str, target: str) -> list[str] | None:
        """Fewest-hop path ignoring edge direction, or None when unreachable."""
        if source not in self.graph or target not in self.graph:
            return None
        if source == target:
            return [source]

        parent: dict[str, str | None] = {source: None}
        queue: deque[str] = deque([source])

        while queue:
            current = queue.popleft()
            for neighbor in (*self.graph.succ[current], *self.graph.pred[current]):
                if neighbor in parent:
                    continue
                parent[neighbor] = current
                if neighbor == target:
                    return self._reconstruct_path(parent, target)
                queue.append(neighbor)

        return None

    def cluster(self, path: str, max_size: int = 20) -> list[ClusterMember]:
        """Strongest related files within three hops, scored ``weight / (depth + 1)``."""
        scored = [
            ClusterMember(path=r.path, cluster_score=r.weight / (r.depth + 1))
            for r in self.neighborhood(path, CLUSTER_DEPTH)
        ]
        scored.sort(key=lambda m: -m.cluster_score)
        return scored[:max_size]

    def dependencies(self, path: str) -> dict[str, dict[str, Any]]:
        """Files ``path`` depends on, with their edge attributes."""
        if path not in self.graph:
            return {}
        return {target: dict(edge) for target, edge in self.graph.succ[path].items()}

    def dependents(self, path: str) -> dict[str, dict[str, Any]]:
        """Files depending on ``path``, with their edge attributes."""
        if path not in self.graph:
            return {}
        return {source: dict(edge) for source, edge in self.graph.pred[path].items()}

    def find_by_symbol(self, name: str) -> list[str]:
        """Files declaring a symbol named ``name`` (case-insensitive exact match)."""
        wanted = name.casefold()
        return [
            path
            for path, data in self.graph.nodes(data=True)
            if any(d.name.casefold() == wanted for d in data.get("declarations", []))
        ]

    def find_symbol_usages(self, name: str) -> list[str]:
        """Files whose usages or import paths contain ``name`` (case-insensitive)."""
        wanted = name.casefold()
        results: list[str] = []
        for path, data in self.graph.nodes(data=True):
            if any(wanted in u.symbol.casefold() for u in data.get("usages", [])) or any(
                wanted in i.path.casefold() for i in data.get("imports", [])
            ):
                results.append(path)
        return results

    def stats(self) -> GraphStats:
        node_count = self.graph.number_of_nodes()
        edge_count = self.graph.number_of_edges()
        symbol_count = sum(len(d.get("declarations", [])) for _, d in self.graph.nodes(data=True))
        return GraphStats(
            node_count=node_count,
            edge_count=edge_count,
            symbol_count=symbol_count,
            avg_dependencies=round(edge_count / node_count, 2) if node_count else 0.0,
        )

    def to_dict(self) -> dict[str, Any]:
        nodes = {
            path: {
                "declarations": [d.model_dump() for d in data["declarations"]],
                "usages": [u.model_dump() for u in data["usages"]],
                "imports": [i.model_dump() for i in data["imports"]],
                "language": data["language"],
                "size": data["size"],
            }
            for path, data in self.graph.nodes(data=True)
        }
        edges: dict[str, dict[str, dict[str, Any]]] = {}
        for source, target, edge in self.graph.edges(data=True):
            edges.setdefault(source, {})[target] = {
                "relationship": edge["relationship"],
                "weight": edge["weight"],
            }
        return {
            "nodes": nodes,
            "edges": edges,
            "metadata": self.metadata,
            "stats": self.stats().model_dump(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SymbolGraph":
        graph = cls(metadata=data.get("metadata", {}))
        for path, node in data.get("nodes", {}).items():
            graph.add_file(
                path,
                declarations=[Declaration(**d) for d in node.get("declarations", [])],
                usages=[Usage(**u) for u in node.get("usages", [])],
                imports=[ImportRef(**i) for i in node.get("imports", [])],
                language=node.get("language", "plaintext"),
                size=node.get("size", 0),
            )
        for source, targets in data.get("edges", {}).items():
            for target, edge in targets.items():
                graph.graph.add_edge(
                    source, target, relationship=edge["relationship"], weight=edge["weight"]
                )
        return graph

    @staticmethod
    def _reconstruct_path(parent: dict[str, str | None], target: str) -> list[str]:
        path: list[str] = []
        current: str | None = target
        while current is not None:
            path.append(current)
            current = parent[current]
        path.reverse()
        return path
