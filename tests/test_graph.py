"""
Tests for DependencyGraph ordering and cycle detection.
"""

import pytest

from attrflow.exceptions import CircularDependencyError
from attrflow.graph import DependencyGraph


@pytest.mark.unit
@pytest.mark.schema
class TestDependencyGraph:
    """Test suite for DependencyGraph."""

    def test_empty_graph(self):
        """Empty graph has no nodes and sorts to nothing."""
        graph = DependencyGraph()
        assert len(graph) == 0
        assert graph.topological_sort([]) == []

    def test_simple_chain(self):
        """Linear chain A -> B -> C sorts in order."""
        graph = DependencyGraph()

        graph.add_edge("A", "B")  # B depends on A
        graph.add_edge("B", "C")  # C depends on B

        assert len(graph) == 3
        assert graph.topological_sort({"C", "B", "A"}) == ["A", "B", "C"]

    def test_simple_cycle(self):
        """Closing A -> B -> C -> A is rejected."""
        graph = DependencyGraph()

        graph.add_edge("A", "B")
        graph.add_edge("B", "C")

        with pytest.raises(CircularDependencyError, match="C -> A -> B -> C"):
            graph.add_edge("C", "A")

    def test_self_loop(self):
        """A node depending on itself is a cycle."""
        graph = DependencyGraph()

        with pytest.raises(CircularDependencyError):
            graph.add_edge("A", "A")

    def test_rejected_edge_leaves_graph_unchanged(self):
        graph = DependencyGraph()
        graph.add_edge("A", "B")

        with pytest.raises(CircularDependencyError):
            graph.add_edge("B", "A")

        assert graph.get_dependents("B") == set()
        assert graph.get_dependencies("A") == set()

    def test_duplicate_edge_is_ignored(self):
        graph = DependencyGraph()
        graph.add_edge("A", "B")
        graph.add_edge("A", "B")

        assert graph.get_dependents("A") == {"B"}

    def test_dependencies_and_dependents(self):
        """Direct and transitive relationship queries."""
        graph = DependencyGraph()

        # A -> B -> C
        # D -> B
        graph.add_edge("A", "B")
        graph.add_edge("B", "C")
        graph.add_edge("D", "B")

        assert graph.get_dependents("A") == {"B"}
        assert graph.get_dependencies("B") == {"A", "D"}
        assert graph.get_all_dependents("A") == {"B", "C"}
        assert graph.get_all_dependencies("C") == {"A", "B", "D"}
        assert graph.get_all_dependents_of(["A", "D"]) == {"B", "C"}

    def test_sort_restricted_to_subset(self):
        """Only requested nodes are returned, still in dependency order."""
        graph = DependencyGraph()
        graph.add_edge("A", "B")
        graph.add_edge("B", "C")
        graph.add_edge("C", "D")

        assert graph.topological_sort({"D", "B"}) == ["B", "D"]

    def test_sort_breaks_ties_by_insertion_order(self):
        graph = DependencyGraph()
        for node in ("z", "y", "x"):
            graph.add_node(node)
        graph.add_edge("x", "w")

        assert graph.topological_sort({"w", "x", "y", "z"}) == ["z", "y", "x", "w"]

    def test_diamond(self):
        """A -> B, A -> C, B -> D, C -> D puts D last."""
        graph = DependencyGraph()
        graph.add_edge("A", "B")
        graph.add_edge("A", "C")
        graph.add_edge("B", "D")
        graph.add_edge("C", "D")

        order = graph.topological_sort({"A", "B", "C", "D"})
        assert order[0] == "A"
        assert order[-1] == "D"
        assert "A" in graph
        assert "E" not in graph
