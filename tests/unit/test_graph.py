import pytest

from codebase_kb.core.graph import SymbolGraph
from codebase_kb.core.models import Declaration, ImportRef, Usage


@pytest.fixture
def graph():
    """c -> a -> b -> d, plus an isolated e."""
    g = SymbolGraph()
    g.add_file("a", declarations=[Declaration(type="class", name="User", line=3)])
    g.add_file("b", usages=[Usage(symbol="User::find", line=7)])
    g.add_file("c", imports=[ImportRef(type="use", path="App\\Models\\User", line=2)])
    g.add_file("d")
    g.add_file("e")
    g.add_edge("a", "b", "imports", 1.0)
    g.add_edge("c", "a", "references", 0.5)
    g.add_edge("b", "d", "extends", 0.9)
    return g


class TestEdges:
    def test_stronger_relationship_wins(self):
        """Test a weaker edge never replaces a stronger one."""
        g = SymbolGraph()
        g.add_file("a")
        g.add_file("b")

        assert g.add_edge("a", "b", "references", 0.5)
        assert g.add_edge("a", "b", "imports", 1.0)
        assert not g.add_edge("a", "b", "extends", 0.9)
        assert g.dependencies("a") == {"b": {"relationship": "imports", "weight": 1.0}}

    def test_no_self_edges(self):
        """Test a file never depends on itself."""
        g = SymbolGraph()
        g.add_file("a")

        assert not g.add_edge("a", "a", "imports", 1.0)
        assert g.graph.number_of_edges() == 0

    def test_dependents(self, graph):
        """Test incoming edges are reported with their attributes."""
        assert graph.dependents("a") == {"c": {"relationship": "references", "weight": 0.5}}
        assert graph.dependents("missing") == {}


class TestTraversal:
    def test_neighborhood_depth_one(self, graph):
        """Test direct neighbors in both directions, incoming ones suffixed with _by."""
        related = graph.neighborhood("a", depth=1)

        assert [(r.path, r.relationship, r.direction, r.depth) for r in related] == [
            ("b", "imports", "outgoing", 1),
            ("c", "references_by", "incoming", 1),
        ]

    def test_neighborhood_depth_two(self, graph):
        """Test deeper files are reported once at the depth first seen."""
        related = graph.neighborhood("a", depth=2)

        assert [(r.path, r.depth) for r in related] == [("b", 1), ("c", 1), ("d", 2)]
        assert related[2].weight == 0.9

    def test_neighborhood_is_symmetric(self, graph):
        """Test relationships are visible from either end with the same weight."""
        from_a = next(r for r in graph.neighborhood("a") if r.path == "b")
        from_b = next(r for r in graph.neighborhood("b") if r.path == "a")

        assert (from_a.direction, from_a.relationship) == ("outgoing", "imports")
        assert (from_b.direction, from_b.relationship) == ("incoming", "imports_by")
        assert from_a.weight == from_b.weight == 1.0

    def test_mutual_edges_report_outgoing(self):
        """Test a file linked both ways is reported once, through its outgoing edge."""
        g = SymbolGraph()
        g.add_file("a")
        g.add_file("b")
        g.add_edge("a", "b", "imports", 1.0)
        g.add_edge("b", "a", "references", 0.5)

        [related] = g.neighborhood("b")

        assert (related.path, related.direction) == ("a", "outgoing")
        assert (related.relationship, related.weight) == ("references", 0.5)

    def test_neighborhood_of_unknown_file(self, graph):
        """Test an unknown file has no neighbors."""
        assert graph.neighborhood("missing") == []
        assert graph.neighborhood("e") == []

    def test_shortest_path_ignores_direction(self, graph):
        """Test the path may traverse edges against their direction."""
        assert graph.shortest_path("c", "d") == ["c", "a", "b", "d"]
        assert graph.shortest_path("d", "c") == ["d", "b", "a", "c"]

    def test_shortest_path_edge_cases(self, graph):
        """Test identical endpoints, unreachable files and unknown files."""
        assert graph.shortest_path("a", "a") == ["a"]
        assert graph.shortest_path("a", "e") is None
        assert graph.shortest_path("a", "missing") is None

    def test_cluster_scores(self, graph):
        """Test members are scored weight / (depth + 1) and capped at max_size."""
        cluster = graph.cluster("a", max_size=2)

        assert [m.path for m in cluster] == ["b", "d"]
        assert [m.cluster_score for m in cluster] == pytest.approx([0.5, 0.3])


class TestSymbolLookup:
    def test_find_by_symbol(self, graph):
        """Test declaration lookup is a case-insensitive exact match."""
        assert graph.find_by_symbol("user") == ["a"]
        assert graph.find_by_symbol("Use") == []

    def test_find_symbol_usages(self, graph):
        """Test usages and import paths are searched by substring."""
        assert graph.find_symbol_usages("user") == ["b", "c"]


class TestSerialization:
    def test_stats(self, graph):
        """Test node, edge and symbol totals."""
        stats = graph.stats()

        assert stats.node_count == 5
        assert stats.edge_count == 3
        assert stats.symbol_count == 1
        assert stats.avg_dependencies == 0.6

    def test_dict_round_trip(self, graph):
        """Test nodes, edges and metadata survive serialization."""
        graph.metadata = {"scan_id": "scan_x"}
        restored = SymbolGraph.from_dict(graph.to_dict())

        assert restored.metadata == {"scan_id": "scan_x"}
        assert restored.dependencies("b") == {"d": {"relationship": "extends", "weight": 0.9}}
        assert restored.find_by_symbol("User") == ["a"]
        assert restored.stats() == graph.stats()

    def test_empty(self):
        """Test the placeholder graph used when no snapshot exists."""
        graph = SymbolGraph.empty()

        assert graph.node_count == 0
        assert graph.metadata["empty"] is True
