"""
Taint graph builder.

One forward pass over a ProgramModel in program order. A symbol table maps
each lexical scope to the definitions of every name reaching the current
point; calls to functions of the same unit are queued and bound after the
pass, so forward references and recursion resolve.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from orthrus.analysis.taint_graph import FlowReason, TaintGraph
from orthrus.models.base import NodeKind
from orthrus.models.program import ProgramModel, ProgramNode
from orthrus.utils.logging import ComponentLogger

# Languages where assigning to an unknown name creates a function local.
FUNCTION_LOCAL_LANGUAGES = frozenset({"python"})
SELF_NAMES = frozenset({"self", "this", "cls"})

Scope = Optional[int]


@dataclass
class BuildStats:
    nodes: int = 0
    synthetic: int = 0
    edges: int = 0
    bound_calls: int = 0


class TaintGraphBuilder:
    """Builds one immutable TaintGraph per ProgramModel."""

    def __init__(self) -> None:
        self.logger = ComponentLogger("graph_builder", parent="analysis")
        self.last_stats = BuildStats()

    def build(self, model: ProgramModel) -> TaintGraph:
        build = _Build(model)
        graph = build.run()
        self.last_stats = BuildStats(
            nodes=len(graph),
            synthetic=len(build.returns),
            edges=graph.edge_count,
            bound_calls=build.bound_calls,
        )
        self.logger.debug(
            "Built taint graph",
            file=model.file_path,
            nodes=self.last_stats.nodes,
            edges=self.last_stats.edges,
            bound_calls=self.last_stats.bound_calls,
        )
        return graph


class _Build:
    def __init__(self, model: ProgramModel):
        self.model = model
        self.graph = TaintGraph(model.file_path, model.language)
        self.function_locals = model.language in FUNCTION_LOCAL_LANGUAGES

        self.table: dict[Scope, dict[str, list[int]]] = {}
        # Guard refinements: read by lookups, never by _owner
        self.refined: dict[Scope, dict[str, list[int]]] = {}
        self.parents: dict[int, Scope] = {}
        self.functions: set[int] = set()
        self.conditional: set[int] = set()

        self.returns: dict[int, int] = {}
        self.functions_by_name: dict[str, list[int]] = {}
        self.params: dict[int, list[ProgramNode]] = {}
        self.pending_calls: list[ProgramNode] = []
        self.bound_calls = 0

    def run(self) -> TaintGraph:
        for node in self.model:
            self.graph.add_node(node)
        self._next_id = self.graph.next_id

        for node in self.model:
            self._visit(node)
        self._bind_calls()
        return self.graph.freeze()

    def edge(self, source: int, target: int, reason: FlowReason, position: Optional[int] = None) -> None:
        self.graph.add_edge(source, target, reason, position)

    # Pass

    def _visit(self, node: ProgramNode) -> None:
        kind = node.kind
        if kind is NodeKind.IDENTIFIER:
            for definition in self.lookup(node.value or "", node.scope):
                self.edge(definition, node.id, FlowReason.USE)
        elif kind is NodeKind.ASSIGNMENT:
            for operand in node.operands:
                self.edge(operand, node.id, FlowReason.ASSIGNMENT)
            if node.value:
                self.define(node.value, node.id, node.scope, node.declaration, node.weak)
        elif kind is NodeKind.CALL:
            if node.receiver is not None:
                self.edge(node.receiver, node.id, FlowReason.RECEIVER)
            for position, argument in enumerate(node.arguments):
                if argument is not None:
                    self.edge(argument, node.id, FlowReason.ARGUMENT, position)
            self.pending_calls.append(node)
        elif kind is NodeKind.CONCATENATION:
            for operand in node.operands:
                self.edge(operand, node.id, FlowReason.CONCATENATION)
        elif kind is NodeKind.COMPOSITE:
            for operand in node.operands:
                self.edge(operand, node.id, FlowReason.COMPOSITE)
        elif kind is NodeKind.RETURN:
            for operand in node.operands:
                self.edge(operand, node.id, FlowReason.RETURN)
            synthetic = self.returns.get(node.function) if node.function is not None else None
            if synthetic is not None:
                self.edge(node.id, synthetic, FlowReason.RETURN)
        elif kind is NodeKind.PARAMETER:
            if node.value:
                self.define(node.value, node.id, node.scope, declaration=True)
            if node.function is not None:
                self.params.setdefault(node.function, []).append(node)
        elif kind is NodeKind.FUNCTION:
            self._enter_function(node)
        elif kind is NodeKind.BLOCK:
            self.parents[node.id] = node.scope
            if node.conditional:
                self.conditional.add(node.id)
        elif kind is NodeKind.GUARD:
            self._refine(node)

    def _enter_function(self, node: ProgramNode) -> None:
        self.parents[node.id] = node.scope
        self.functions.add(node.id)
        synthetic = ProgramNode(
            id=self._next_id,
            kind=NodeKind.RETURN,
            location=node.location,
            value=f"return of {node.value or '<anonymous>'}",
            scope=node.id,
            text=node.text,
            synthetic=True,
            function=node.id,
        )
        self._next_id += 1
        self.graph.add_node(synthetic)
        self.returns[node.id] = synthetic.id
        if node.value:
            self.functions_by_name.setdefault(node.value, []).append(node.id)

    def _refine(self, guard: ProgramNode) -> None:
        """Make lookups of the names a guard call checked resolve to that call."""
        if guard.negated and guard.exits:
            target = guard.scope
        elif not guard.negated and guard.block is not None:
            target = guard.block
        else:
            return
        call = self.model.get(guard.operands[0])
        for operand in (call.receiver, *call.arguments):
            if operand is None:
                continue
            checked = self.model.get(operand)
            if checked.kind is NodeKind.IDENTIFIER and checked.value:
                self.refined.setdefault(target, {})[checked.value] = [call.id]

    # Symbol table

    def _chain(self, scope: Scope):
        while True:
            yield scope
            if scope is None:
                return
            scope = self.parents.get(scope)

    def _visible(self, name: str, scope: Scope) -> list[int]:
        for s in self._chain(scope):
            refined = self.refined.get(s, {}).get(name)
            if refined:
                return refined
            defs = self.table.get(s, {}).get(name)
            if defs:
                return defs
        return []

    def lookup(self, path: str, scope: Scope) -> list[int]:
        """Reaching definitions for the longest defined prefix of `path`."""
        segments = path.split(".")
        for end in range(len(segments), 0, -1):
            defs = self._visible(".".join(segments[:end]), scope)
            if defs:
                return defs
        return []

    def _owner(self, name: str, scope: Scope) -> tuple[Scope, bool]:
        """Scope an assignment to `name` updates, and whether it is conditional."""
        crossed = False
        for s in self._chain(scope):
            if name in self.table.get(s, {}):
                return s, crossed
            if s is None or (self.function_locals and s in self.functions):
                break
            if s in self.conditional:
                crossed = True

        crossed = False
        for s in self._chain(scope):
            if s is None or s in self.functions:
                return s, crossed
            if s in self.conditional:
                crossed = True
        return None, crossed

    def define(
        self,
        name: str,
        node_id: int,
        scope: Scope,
        declaration: bool = False,
        weak: bool = False,
    ) -> None:
        if declaration:
            target, crossed = scope, False
        else:
            target, crossed = self._owner(name, scope)

        refined = self.refined.get(target, {}).get(name)
        self._unrefine(name, scope, target)

        entries = self.table.setdefault(target, {})
        if weak or crossed:
            if refined is not None:
                entries[name] = list(refined)
            elif name not in entries:
                entries[name] = list(self._visible(name, target))
            entries[name].append(node_id)
        else:
            entries[name] = [node_id]

    def _unrefine(self, name: str, scope: Scope, target: Scope) -> None:
        """Drop refinements of `name` from `scope` up to the updated scope."""
        for s in self._chain(scope):
            self.refined.get(s, {}).pop(name, None)
            if s == target:
                return

    # Deferred call bindings

    def _resolve(self, call: ProgramNode) -> list[int]:
        if not call.value:
            return []
        segments = call.value.split(".")
        if len(segments) == 1:
            return self.functions_by_name.get(segments[0], [])
        if len(segments) == 2 and segments[0] in SELF_NAMES:
            return self.functions_by_name.get(segments[1], [])
        return []

    def _bind_calls(self) -> None:
        for call in self.pending_calls:
            method_call = "." in (call.value or "")
            for function in self._resolve(call):
                params = self.params.get(function, [])
                offset = 1 if method_call and params and params[0].value in ("self", "cls") else 0
                by_name = {p.value: p for p in params if p.value}
                for position, (argument, keyword) in enumerate(zip(call.arguments, call.keywords)):
                    if argument is None or keyword in ("*", "**"):
                        continue
                    if keyword is not None:
                        param = by_name.get(keyword)
                    elif position + offset < len(params):
                        param = params[position + offset]
                    else:
                        param = None
                    if param is not None:
                        self.edge(argument, param.id, FlowReason.PARAMETER_BINDING, position)
                self.edge(self.returns[function], call.id, FlowReason.CALL_RETURN)
                self.bound_calls += 1
