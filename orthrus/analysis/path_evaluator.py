"""
Backward reachability from sinks to sources.

For every (rule, sink) pair a breadth-first search walks flow edges
backward. Nodes tagged SANITIZER for the same rule are never expanded, so
any flow that must pass through one is blocked. The first SOURCE reached
gives the shortest unblocked path and becomes a Finding.
"""

from __future__ import annotations

from collections import deque
from typing import Optional

from orthrus.analysis.taint_graph import Edge, FlowReason, TaintGraph
from orthrus.core.errors import InternalGraphError
from orthrus.models.base import NodeKind, Tag
from orthrus.models.finding import Finding, TraceStep
from orthrus.rules.ruleset import Rule, RuleSet, TagIndex
from orthrus.utils.logging import ComponentLogger

HOP_PENALTY = 0.05
INTERPROCEDURAL_PENALTY = 0.25


def score(hops: int, interprocedural_hops: int) -> float:
    """
    Confidence of a path.

    1.0 for a direct source-to-sink flow; decreases with every
    non-identifier node on the way, and faster for call/return bindings.
    """
    return 1.0 / (1.0 + HOP_PENALTY * hops + INTERPROCEDURAL_PENALTY * interprocedural_hops)


class PathEvaluator:
    """Finds unblocked source-to-sink paths in one tagged graph."""

    def __init__(self, rules: RuleSet, strict: bool = False):
        self.rules = rules
        self.strict = strict
        self.logger = ComponentLogger("path_evaluator", parent="analysis")

    def evaluate(self, graph: TaintGraph, tags: TagIndex) -> list[Finding]:
        """
        One finding per (rule, sink) pair with a reachable source.

        Sinks that no source of the rule reaches forward are skipped before
        the backward search.

        Raises:
            InternalGraphError: only in strict mode, when a path references
                a node missing from the graph
        """
        findings: list[Finding] = []
        for rule in self.rules.for_language(graph.language):
            tainted = graph.reachable_from(tags.nodes(rule.id, Tag.SOURCE))
            for sink_id in tags.nodes(rule.id, Tag.SINK):
                if sink_id in graph and sink_id not in tainted:
                    continue
                try:
                    finding = self._search(graph, tags, rule, sink_id)
                except InternalGraphError as e:
                    if self.strict:
                        raise
                    self.logger.error(
                        "Skipping finding on inconsistent graph",
                        file=graph.file_path,
                        rule=rule.id,
                        sink=sink_id,
                        error=str(e),
                    )
                    continue
                if finding is not None:
                    findings.append(finding)

        self.logger.debug("Evaluated paths", file=graph.file_path, findings=len(findings))
        return findings

    def _entry_edges(self, graph: TaintGraph, rule: Rule, sink_id: int) -> list[Edge]:
        """Edges through which taint may enter the sink."""
        positions = rule.sink_positions(graph.node(sink_id), graph)
        edges = graph.predecessors(sink_id)
        if positions is None:
            return edges
        return [
            e for e in edges if e.reason is FlowReason.ARGUMENT and e.position in positions
        ]

    def _search(
        self,
        graph: TaintGraph,
        tags: TagIndex,
        rule: Rule,
        sink_id: int,
    ) -> Optional[Finding]:
        parents: dict[int, Edge] = {}
        visited = {sink_id}
        queue: deque[int] = deque()

        def enqueue(edge: Edge) -> None:
            if edge.source not in visited:
                visited.add(edge.source)
                parents[edge.source] = edge
                queue.append(edge.source)

        for edge in self._entry_edges(graph, rule, sink_id):
            enqueue(edge)

        while queue:
            current = queue.popleft()
            tag = tags.tag(current, rule.id)
            if tag is Tag.SANITIZER:
                continue
            if tag is Tag.SOURCE:
                return self._finding(graph, rule, current, sink_id, parents)
            for edge in graph.predecessors(current):
                enqueue(edge)
        return None

    def _finding(
        self,
        graph: TaintGraph,
        rule: Rule,
        source_id: int,
        sink_id: int,
        parents: dict[int, Edge],
    ) -> Finding:
        # parents[n] is the edge n -> next, walking forward toward the sink
        node_ids = [source_id]
        entered: list[Optional[Edge]] = [None]
        current = source_id
        while current != sink_id:
            edge = parents.get(current)
            if edge is None:
                raise InternalGraphError("Broken path while rebuilding trace", current)
            node_ids.append(edge.target)
            entered.append(edge)
            current = edge.target

        nodes = [graph.node(node_id) for node_id in node_ids]
        hops = sum(1 for node in nodes[1:-1] if node.kind is not NodeKind.IDENTIFIER)
        interprocedural_hops = sum(1 for e in entered if e is not None and e.interprocedural)

        steps = []
        for position, (node, edge) in enumerate(zip(nodes, entered)):
            if position == 0:
                step_type = "source"
            elif position == len(nodes) - 1:
                step_type = "sink"
            else:
                step_type = "propagation"
            steps.append(
                TraceStep(
                    node_id=node.id,
                    location=node.location,
                    code_snippet=node.text,
                    description=node.label,
                    step_type=step_type,
                    interprocedural=edge is not None and edge.interprocedural,
                )
            )

        source, sink = nodes[0], nodes[-1]
        return Finding(
            rule_id=rule.id,
            title=rule.title,
            severity=rule.severity,
            confidence=score(hops, interprocedural_hops),
            path=tuple(steps),
            message=rule.render_message(source, sink),
            remediation=rule.remediation,
            cwe=rule.cwe,
            interprocedural_hops=interprocedural_hops,
        )
