"""Tests for the taint graph container."""

from pathlib import Path

import pytest

from orthrus.analysis.taint_graph import Edge, FlowReason, TaintGraph
from orthrus.core.errors import InternalGraphError
from orthrus.models.base import CodeLocation, NodeKind
from orthrus.models.program import ProgramNode


def make_node(node_id, kind=NodeKind.IDENTIFIER, value=None):
    return ProgramNode(
        id=node_id,
        kind=kind,
        location=CodeLocation(Path("t.py"), node_id + 1, 1),
        value=value,
    )


@pytest.fixture
def graph():
    """0 -> 1 -> 3 and 2 -> 3."""
    g = TaintGraph(Path("t.py"), "python")
    for i in range(4):
        g.add_node(make_node(i, value=f"n{i}"))
    g.add_edge(0, 1, FlowReason.ASSIGNMENT)
    g.add_edge(1, 3, FlowReason.ARGUMENT, position=0)
    g.add_edge(2, 3, FlowReason.ARGUMENT, position=1)
    return g.freeze()


class TestFlowReason:
    """Test edge reason classification."""

    def test_interprocedural_reasons(self):
        """Should flag only call and return bindings as interprocedural."""
        assert FlowReason.PARAMETER_BINDING.interprocedural
        assert FlowReason.CALL_RETURN.interprocedural
        assert not FlowReason.ASSIGNMENT.interprocedural
        assert Edge(0, 1, FlowReason.CALL_RETURN).interprocedural


class TestTaintGraph:
    """Test node and edge access."""

    def test_size(self, graph):
        assert len(graph) == 4
        assert graph.edge_count == 3
        assert graph.next_id == 4
        assert 3 in graph
        assert 9 not in graph

    def test_nodes_in_id_order(self, graph):
        """Should iterate nodes sorted by id."""
        assert [n.id for n in graph.nodes()] == [0, 1, 2, 3]

    def test_incoming(self, graph):
        """Should return incoming edges with their reason and position."""
        edges = graph.incoming(3)
        assert [(e.source, e.position) for e in edges] == [(1, 0), (2, 1)]
        assert all(e.reason is FlowReason.ARGUMENT for e in edges)
        assert graph.incoming(0) == []
        assert graph.incoming(42) == []

    def test_reachable_from(self, graph):
        """Should include the start nodes and everything downstream."""
        assert graph.reachable_from([0]) == {0, 1, 3}
        assert graph.reachable_from([3]) == {3}
        assert graph.reachable_from([0, 2, 42]) == {0, 1, 2, 3}
        assert graph.reachable_from([]) == set()

    def test_unknown_node(self, graph):
        """Should raise InternalGraphError for an id not in the graph."""
        with pytest.raises(InternalGraphError) as exc_info:
            graph.node(42)
        assert exc_info.value.node_id == 42


class TestPredecessors:
    """Test deduplication of incoming edges."""

    def test_prefers_intraprocedural_edge(self):
        """Should keep the intraprocedural edge when a source has several."""
        g = TaintGraph(Path("t.py"), "python")
        g.add_node(make_node(0))
        g.add_node(make_node(1))
        g.add_edge(0, 1, FlowReason.CALL_RETURN)
        g.add_edge(0, 1, FlowReason.USE)
        g.freeze()

        preds = g.predecessors(1)
        assert len(preds) == 1
        assert preds[0].reason is FlowReason.USE
        assert len(g.incoming(1)) == 2
        assert g.edge_count == 2

    def test_first_edge_wins_otherwise(self):
        g = TaintGraph(Path("t.py"), "python")
        g.add_node(make_node(0))
        g.add_node(make_node(1))
        g.add_edge(0, 1, FlowReason.ARGUMENT, position=1)
        g.add_edge(0, 1, FlowReason.ARGUMENT, position=0)

        assert g.predecessors(1)[0].position == 1


class TestFreeze:
    """Test validation and immutability."""

    def test_dangling_edge(self):
        """Should reject an edge to a node that does not exist."""
        g = TaintGraph(Path("t.py"), "python")
        g.add_node(make_node(0))
        g.add_edge(0, 5, FlowReason.USE)

        with pytest.raises(InternalGraphError, match="Dangling"):
            g.freeze()

    def test_no_changes_after_freeze(self, graph):
        """Should refuse new nodes and edges once frozen."""
        assert graph.frozen
        with pytest.raises(InternalGraphError):
            graph.add_node(make_node(10))
        with pytest.raises(InternalGraphError):
            graph.add_edge(0, 2, FlowReason.USE)

    def test_duplicate_node_id(self):
        g = TaintGraph(Path("t.py"), "python")
        g.add_node(make_node(0))
        with pytest.raises(InternalGraphError, match="Duplicate"):
            g.add_node(make_node(0))
