"""
Directed value-flow graph for one scanned unit.

An edge `a -> b` means a value computed at `a` may reach `b`. Edges are
append-only and duplicates between the same pair are kept; queries
deduplicate them. Once frozen, the graph rejects further changes.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from itertools import chain
from pathlib import Path
from typing import Any, Iterable, Iterator, Optional

import networkx as nx

from orthrus.core.errors import InternalGraphError
from orthrus.models.program import ProgramNode


class FlowReason(Enum):
    """Why a value flows along an edge."""

    USE = "use"
    ASSIGNMENT = "assignment"
    ARGUMENT = "argument"
    RECEIVER = "receiver"
    CONCATENATION = "concatenation"
    COMPOSITE = "composite"
    RETURN = "return"
    PARAMETER_BINDING = "parameter_binding"
    CALL_RETURN = "call_return"

    @property
    def interprocedural(self) -> bool:
        return self in _INTERPROCEDURAL


_INTERPROCEDURAL = frozenset({FlowReason.PARAMETER_BINDING, FlowReason.CALL_RETURN})


@dataclass(frozen=True)
class Edge:
    """flows_to(source, target)."""

    source: int
    target: int
    reason: FlowReason
    position: Optional[int] = None  # argument index for ARGUMENT / PARAMETER_BINDING

    @property
    def interprocedural(self) -> bool:
        return self.reason.interprocedural


class TaintGraph:
    """
    Nodes and flow edges of one unit.

    Backed by a networkx MultiDiGraph: each ProgramNode is stored as the
    `node` attribute of its id, and parallel edges between the same pair
    keep their own `reason` and `position`.
    """

    def __init__(self, file_path: Path, language: str):
        self.file_path = file_path
        self.language = language
        self._graph: nx.MultiDiGraph = nx.MultiDiGraph()
        self._frozen = False

    def __len__(self) -> int:
        return self._graph.number_of_nodes()

    def __contains__(self, node_id: int) -> bool:
        return node_id in self._graph and "node" in self._graph.nodes[node_id]

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def edge_count(self) -> int:
        return self._graph.number_of_edges()

    @property
    def next_id(self) -> int:
        return max(self._graph) + 1 if self._graph else 0

    def _check_open(self) -> None:
        if self._frozen:
            raise InternalGraphError("Graph is frozen")

    def add_node(self, node: ProgramNode) -> None:
        self._check_open()
        if node.id in self:
            raise InternalGraphError("Duplicate node id", node.id)
        self._graph.add_node(node.id, node=node)

    def add_edge(
        self,
        source: int,
        target: int,
        reason: FlowReason,
        position: Optional[int] = None,
    ) -> Edge:
        """Append an edge. Endpoints are checked when the graph is frozen."""
        self._check_open()
        self._graph.add_edge(source, target, reason=reason, position=position)
        return Edge(source, target, reason, position)

    def freeze(self) -> "TaintGraph":
        """
        Validate every edge endpoint and make the graph read-only.

        Raises:
            InternalGraphError: an edge references a node not in this graph
        """
        for node_id, data in self._graph.nodes(data=True):
            if "node" in data:
                continue
            source, target, reason = next(
                chain(
                    self._graph.in_edges(node_id, data="reason"),
                    self._graph.out_edges(node_id, data="reason"),
                )
            )
            raise InternalGraphError(f"Dangling {reason.value} edge {source} -> {target}", node_id)
        self._frozen = True
        return self

    def node(self, node_id: int) -> ProgramNode:
        try:
            return self._graph.nodes[node_id]["node"]
        except KeyError:
            raise InternalGraphError("Unknown node", node_id) from None

    def nodes(self) -> Iterator[ProgramNode]:
        """Nodes in id order."""
        for node_id in sorted(self._graph):
            yield self._graph.nodes[node_id]["node"]

    @staticmethod
    def _edge(source: int, target: int, data: dict[str, Any]) -> Edge:
        return Edge(source, target, data["reason"], data["position"])

    def incoming(self, node_id: int) -> list[Edge]:
        """All incoming edges, duplicates included."""
        if node_id not in self._graph:
            return []
        return [self._edge(u, v, data) for u, v, data in self._graph.in_edges(node_id, data=True)]

    def predecessors(self, node_id: int) -> list[Edge]:
        """
        Incoming edges deduplicated by source node.

        When several edges share a source, an intraprocedural one is kept
        over an interprocedural one; otherwise the first added wins.
        """
        chosen: dict[int, Edge] = {}
        for edge in self.incoming(node_id):
            kept = chosen.get(edge.source)
            if kept is None or (kept.interprocedural and not edge.interprocedural):
                chosen[edge.source] = edge
        return list(chosen.values())

    def reachable_from(self, starts: Iterable[int]) -> set[int]:
        """Every node reachable forward from `starts` (inclusive)."""
        reached: set[int] = set()
        for start in starts:
            if start in reached or start not in self._graph:
                continue
            reached.add(start)
            reached |= nx.descendants(self._graph, start)
        return reached
