"""
Source model adapter: tree-sitter CST -> uniform program model.

Nodes are emitted in evaluation order. Operands come before the expression
that consumes them, a FUNCTION comes before its parameters and body, and a
BLOCK comes before its GUARD nodes and the statements it contains.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any, Optional

from orthrus.context.grammars import GrammarProfile, child, get_profile, node_text
from orthrus.context.tree_sitter_parser import TreeSitterParser
from orthrus.core.errors import ParseError
from orthrus.models.base import CodeLocation, NodeKind
from orthrus.models.program import ProgramModel, ProgramNode, SourceUnit
from orthrus.utils.logging import ComponentLogger

Node = Any

_STATEMENT_SUFFIXES = ("_statement", "_declaration", "_clause", "_body", "_block")
_TYPE_NODES = frozenset(
    {
        "type",
        "type_identifier",
        "type_arguments",
        "type_parameters",
        "dimensions",
        "generic_type",
        "scoped_type_identifier",
        "integral_type",
        "floating_point_type",
        "boolean_type",
        "void_type",
        "array_type",
    }
)
_COMPREHENSIONS = frozenset(
    {"list_comprehension", "set_comprehension", "dictionary_comprehension", "generator_expression"}
)
_GENERICS = re.compile(r"<.*>")
SNIPPET_WIDTH = 120


def _is_statement(node_type: str) -> bool:
    return node_type == "block" or node_type.endswith(_STATEMENT_SUFFIXES)


def _is_type(node_type: str) -> bool:
    return node_type in _TYPE_NODES or node_type.endswith("_type")


def _key(node: Node) -> tuple[int, int, str]:
    return (node.start_byte, node.end_byte, node.type)


def _snippet(node: Node) -> str:
    first = node_text(node).strip().splitlines()
    line = first[0].strip() if first else ""
    return line if len(line) <= SNIPPET_WIDTH else line[: SNIPPET_WIDTH - 3] + "..."


class SourceModelAdapter:
    """Turns a source unit into a ProgramModel."""

    def __init__(self, parser: Optional[TreeSitterParser] = None):
        self.parser = parser or TreeSitterParser()
        self.logger = ComponentLogger("adapter", parent="context")

    def adapt(self, unit: SourceUnit) -> ProgramModel:
        """
        Parse and lower one unit.

        Raises:
            ParseError: unsupported language, unreadable file or syntax error
        """
        language, content, tree = self.parser.parse_unit(unit)
        profile = get_profile(language)
        if profile is None:
            raise ParseError(unit.path, None, f"Unsupported language: {language}")

        lowering = _Lowering(unit.path, profile)
        lowering.statement(tree.root_node)

        nodes = lowering.nodes
        model = ProgramModel(
            file_path=unit.path,
            language=language,
            nodes=nodes,
            index={node.id: position for position, node in enumerate(nodes)},
            line_count=content.count(b"\n") + (1 if content and not content.endswith(b"\n") else 0),
        )
        self.logger.debug("Adapted unit", file=unit.path, nodes=len(nodes))
        return model


class _Lowering:
    """One walk over one tree."""

    def __init__(self, file_path: Path, profile: GrammarProfile):
        self.file_path = file_path
        self.p = profile
        self.nodes: list[ProgramNode] = []
        self._scopes: list[Optional[int]] = [None]
        self._functions: list[int] = []
        self._call_ids: dict[tuple[int, int, str], int] = {}

    # Emission

    def _location(self, node: Node) -> CodeLocation:
        return CodeLocation(
            file_path=self.file_path,
            line=node.start_point[0] + 1,
            column=node.start_point[1] + 1,
            end_line=node.end_point[0] + 1,
            end_column=node.end_point[1] + 1,
        )

    def emit(self, kind: NodeKind, node: Node, **attrs: Any) -> int:
        node_id = len(self.nodes)
        self.nodes.append(
            ProgramNode(
                id=node_id,
                kind=kind,
                location=self._location(node),
                scope=self._scopes[-1],
                text=_snippet(node),
                **attrs,
            )
        )
        return node_id

    def _emit_guard(self, call_id: int, block: int, after: bool = False) -> None:
        call = self.nodes[call_id]
        self.nodes.append(
            ProgramNode(
                id=len(self.nodes),
                kind=NodeKind.GUARD,
                location=call.location,
                scope=self._scopes[-1],
                text=call.text,
                operands=(call_id,),
                block=block,
                negated=after,
                exits=after,
            )
        )

    # Statements

    def statement(self, node: Node) -> None:
        p = self.p
        t = node.type
        if t in p.comment_types or t in p.ignored_types:
            return
        if t in p.container_types:
            for c in p.named(node):
                self.statement(c)
        elif t in p.decorated_types:
            self._decorated(node)
        elif t in p.function_types:
            self.function(node)
        elif t in p.class_types:
            body = p.class_body(node)
            if body is not None:
                self.statement(body)
        elif t == "if_statement":
            self._if(node)
        elif t in p.while_types:
            self._while(node)
        elif t in p.foreach_types:
            self._foreach(node)
        elif t in p.cfor_types:
            self._cfor(node)
        elif t in p.with_types:
            self._with(node)
        elif t in p.try_types:
            self._try(node)
        elif t in p.return_types:
            self._return(node)
        elif t in p.declaration_types:
            self._declaration(node, p.declaration_types[t])
        elif t in p.switch_types:
            self._switch(node)
        elif _is_statement(t):
            for c in p.named(node):
                if not _is_type(c.type):
                    self.statement(c)
        else:
            self.expr(node)

    def _block(self, body: Optional[Node], guards: list[int] = ()) -> Optional[int]:
        """Lower a conditionally executed body inside its own BLOCK."""
        if body is None:
            return None
        block = self.emit(NodeKind.BLOCK, body, conditional=True)
        for call_id in guards:
            self._emit_guard(call_id, block)
        self._scopes.append(block)
        try:
            self.statement(body)
        finally:
            self._scopes.pop()
        return block

    def _guarded(self, condition: Optional[Node], body: Optional[Node]) -> None:
        """`if condition: body` with guard refinement for both outcomes."""
        holds: list[int] = []
        fails: list[int] = []
        if condition is not None:
            self.expr(condition)
            holds = self._guard_calls(condition, True)
            fails = self._guard_calls(condition, False)
        block = self._block(body, holds)
        if block is not None and fails and self._terminates(body):
            for call_id in fails:
                self._emit_guard(call_id, block, after=True)

    def _if(self, node: Node) -> None:
        condition, consequence, branches = self.p.if_branches(node)
        self._guarded(condition, consequence)
        for alt_condition, body in branches:
            if alt_condition is None:
                self._block(body)
            else:
                self._guarded(alt_condition, body)

    def _while(self, node: Node) -> None:
        condition = child(node, "condition")
        holds: list[int] = []
        if condition is not None:
            self.expr(condition)
            holds = self._guard_calls(condition, True)
        self._block(child(node, "body"), holds)
        self._block(child(node, "alternative"))

    def _foreach(self, node: Node) -> None:
        parts = self.p.foreach_parts(node)
        iterable = self.expr(parts.iterable) if parts.iterable is not None else None
        if parts.body is None:
            return
        block = self.emit(NodeKind.BLOCK, parts.body, conditional=True)
        self._scopes.append(block)
        try:
            if parts.target is not None and iterable is not None:
                self.bind(parts.target, iterable, declaration=parts.declaration)
            self.statement(parts.body)
        finally:
            self._scopes.pop()
        self._block(child(node, "alternative"))

    def _cfor(self, node: Node) -> None:
        for name in ("initializer", "init"):
            for init in node.children_by_field_name(name):
                self.statement(init)
        condition = child(node, "condition")
        if condition is not None:
            self.statement(condition)
        body = child(node, "body")
        if body is None:
            return
        block = self.emit(NodeKind.BLOCK, body, conditional=True)
        self._scopes.append(block)
        try:
            self.statement(body)
            for name in ("increment", "update"):
                for step in node.children_by_field_name(name):
                    self.statement(step)
        finally:
            self._scopes.pop()

    def _try(self, node: Node) -> None:
        plain, handlers, final = self.p.try_parts(node)
        for body in plain:
            if body is not None:
                self.statement(body)
        for body in handlers:
            self._block(body)
        for body in final:
            if body is not None:
                self.statement(body)

    def _with(self, node: Node) -> None:
        items, body = self.p.with_items(node)
        for value, alias in items:
            value_id = self.expr(value)
            if alias is not None:
                self.bind(alias, value_id, declaration=self.p.block_scoped)
        if body is not None:
            self.statement(body)
        _, handlers, final = self.p.try_parts(node)
        for handler in handlers:
            self._block(handler)
        for body in final:
            self.statement(body)

    def _switch(self, node: Node) -> None:
        for c in self.p.named(node):
            if _is_statement(c.type):
                for case in self.p.named(c):
                    self._block(case)
            else:
                self.expr(c)

    def _return(self, node: Node) -> None:
        value = self.p.return_value(node)
        operands = (self.expr(value),) if value is not None else ()
        self.emit(
            NodeKind.RETURN,
            node,
            operands=operands,
            function=self._functions[-1] if self._functions else None,
        )

    def _declaration(self, node: Node, declaration: bool) -> None:
        for declarator in self.p.named(node):
            if declarator.type != self.p.declarator_type:
                continue
            name = child(declarator, "name")
            value = child(declarator, "value")
            if name is None or value is None:
                continue
            hint = node_text(name) if name.type in self.p.identifier_types else None
            self.bind(name, self.expr(value, name_hint=hint), declaration=declaration)

    def _decorated(self, node: Node) -> None:
        exprs, definition = self.p.decorators(node)
        names: list[str] = []
        for expr in exprs:
            value_id = self.expr(expr)
            value = self.nodes[value_id].value
            if value:
                names.append(value)
        if definition.type in self.p.function_types:
            self.function(definition, annotations=tuple(names))
        else:
            self.statement(definition)

    def function(
        self,
        node: Node,
        name_hint: Optional[str] = None,
        annotations: tuple[str, ...] = (),
    ) -> int:
        parts = self.p.function_parts(node)
        for spec in parts.params:
            if spec.default is not None:
                self.expr(spec.default)

        fn = self.emit(
            NodeKind.FUNCTION,
            node,
            value=parts.name or name_hint,
            annotations=parts.annotations + annotations,
        )
        self._scopes.append(fn)
        self._functions.append(fn)
        try:
            for index, spec in enumerate(parts.params):
                param = self.emit(
                    NodeKind.PARAMETER,
                    spec.node,
                    value=spec.name,
                    index=index,
                    function=fn,
                    declaration=True,
                    annotations=spec.annotations,
                )
                if spec.pattern is not None:
                    self.bind(spec.pattern, param, declaration=True)

            if parts.body is not None:
                if parts.expression_body:
                    value_id = self.expr(parts.body)
                    self.emit(NodeKind.RETURN, parts.body, operands=(value_id,), function=fn)
                else:
                    self.statement(parts.body)
        finally:
            self._functions.pop()
            self._scopes.pop()
        return fn

    # Conditions

    def _guard_calls(self, node: Node, holds: bool) -> list[int]:
        """
        Calls known to have returned truthy when `node` evaluates to `holds`.

        `not` flips the outcome; `and` splits when true, `or` when false.
        """
        p = self.p
        node = p.unwrap(node)
        inner = p.negation(node)
        if inner is not None:
            return self._guard_calls(inner, not holds)
        split = p.boolean(node)
        if split is not None:
            op, left, right = split
            if (op == "and") == holds:
                return self._guard_calls(left, holds) + self._guard_calls(right, holds)
            return []
        if holds and node.type in p.call_types:
            call_id = self._call_ids.get(_key(node))
            return [call_id] if call_id is not None else []
        return []

    def _terminates(self, body: Optional[Node]) -> bool:
        """Whether a body always leaves the enclosing block."""
        if body is None:
            return False
        p = self.p
        last = body
        while last.type in p.container_types or last.type in ("block", "statement_block"):
            statements = p.named(last)
            if not statements:
                return False
            last = statements[-1]
        if last.type in p.exit_types:
            return True
        last = p.unwrap(last)
        if last.type in p.call_types:
            return p.is_exit_call(self._callee_path(p.split_call(last)))
        return False

    # Expressions

    def _path(self, node: Optional[Node]) -> Optional[str]:
        """Dotted access path of an identifier/member chain, or None."""
        if node is None:
            return None
        p = self.p
        node = p.unwrap(node)
        t = node.type
        if t in p.identifier_types:
            return node_text(node)
        if t in p.member_types:
            obj_field, prop_field = p.member_types[t]
            base = self._path(child(node, obj_field))
            prop = child(node, prop_field)
            if base is None or prop is None:
                return None
            return f"{base}.{node_text(prop)}"
        if t in p.subscript_types:
            return self._path(child(node, p.subscript_types[t][0]))
        return None

    def _callee_path(self, parts: Any) -> Optional[str]:
        if parts.obj is not None:
            base = self._path(parts.obj)
            return f"{base}.{parts.name}" if base is not None else parts.name
        if parts.target is not None:
            return self._path(parts.target)
        return parts.name

    def expr(self, node: Node, name_hint: Optional[str] = None) -> int:
        """Lower an expression; returns the id of the node carrying its value."""
        p = self.p
        node = p.unwrap(node)
        t = node.type

        if t in p.identifier_types or t in p.member_types or t in p.subscript_types:
            path = self._path(node)
            if path is not None:
                if t in p.subscript_types:
                    index = child(node, p.subscript_types[t][1])
                    if index is not None and index.type in p.call_types:
                        self.expr(index)
                return self.emit(NodeKind.IDENTIFIER, node, value=path)
            if t in p.member_types:
                obj_field, prop_field = p.member_types[t]
                prop = child(node, prop_field)
                return self.emit(
                    NodeKind.COMPOSITE,
                    node,
                    value=node_text(prop) if prop is not None else None,
                    operands=(self.expr(child(node, obj_field)),),
                )
            return self._composite(node)
        if t in p.call_types:
            return self._call(node)
        if t in p.string_types:
            return self._string(node)
        if t == "concatenated_string":
            parts = tuple(self._string(c) for c in p.named(node))
            return self.emit(NodeKind.CONCATENATION, node, operands=parts)
        if t in p.literal_types:
            return self.emit(NodeKind.LITERAL, node, value=p.literal_value(node))
        if t in p.function_types:
            return self.function(node, name_hint=name_hint)
        if t in p.binary_types:
            operands = (self.expr(child(node, "left")), self.expr(child(node, "right")))
            kind = (
                NodeKind.CONCATENATION
                if p.binary_operator(node) in p.concat_operators
                else NodeKind.COMPOSITE
            )
            return self.emit(kind, node, operands=operands)
        if t in p.assignment_types or t in p.augmented_types:
            return self._assignment(node)
        if t == "named_expression":
            value_id = self.expr(child(node, "value"))
            self.bind(child(node, "name"), value_id, declaration=False)
            return value_id
        if t == "pair":
            return self.expr(child(node, "value"))
        if t in _COMPREHENSIONS:
            return self._comprehension(node)
        if t in p.class_types:
            body = p.class_body(node)
            if body is not None:
                self.statement(body)
            return self.emit(NodeKind.COMPOSITE, node)
        if _is_statement(t):
            self.statement(node)
            return self.emit(NodeKind.COMPOSITE, node)
        return self._composite(node)

    def _composite(self, node: Node) -> int:
        operands = tuple(
            self.expr(c)
            for c in self.p.named(node)
            if c.type not in self.p.ignored_types and not _is_type(c.type)
        )
        return self.emit(NodeKind.COMPOSITE, node, operands=operands)

    def _comprehension(self, node: Node) -> int:
        operands: list[int] = []
        for clause in self.p.named(node):
            if clause.type == "for_in_clause":
                iterable = self.expr(child(clause, "right"))
                operands.append(iterable)
                self.bind(child(clause, "left"), iterable, declaration=False, weak=True)
            elif clause.type == "if_clause":
                for c in self.p.named(clause):
                    self.expr(c)
        body = child(node, "body")
        if body is not None:
            operands.append(self.expr(body))
        return self.emit(NodeKind.COMPOSITE, node, operands=tuple(operands))

    def _string(self, node: Node) -> int:
        text, interpolations = self.p.string_pieces(node)
        if not interpolations:
            return self.emit(NodeKind.LITERAL, node, value=text)
        operands = tuple(self.expr(x) for x in interpolations)
        return self.emit(NodeKind.CONCATENATION, node, operands=operands)

    def _call(self, node: Node) -> int:
        parts = self.p.split_call(node)
        receiver: Optional[int] = None
        callee: Optional[str]

        if parts.obj is not None:
            base = self._path(parts.obj)
            receiver = self.expr(parts.obj)
            callee = f"{base}.{parts.name}" if base is not None else parts.name
        elif parts.target is not None:
            callee = self._path(parts.target)
            if callee is None:
                if parts.constructor:
                    callee = _GENERICS.sub("", node_text(parts.target)).strip()
                else:
                    receiver = self.expr(parts.target)
        else:
            callee = parts.name

        arguments: list[int] = []
        keywords: list[Optional[str]] = []
        for keyword, arg in parts.args:
            arguments.append(self.expr(arg))
            keywords.append(keyword)
        for extra in parts.extra:
            self.statement(extra)

        operands = ((receiver,) if receiver is not None else ()) + tuple(arguments)
        call_id = self.emit(
            NodeKind.CALL,
            node,
            value=callee,
            operands=operands,
            receiver=receiver,
            arguments=tuple(arguments),
            keywords=tuple(keywords),
        )
        self._call_ids[_key(node)] = call_id
        return call_id

    def _assignment(self, node: Node) -> int:
        p = self.p
        left = child(node, "left")
        right = child(node, "right")
        if left is None or right is None:
            return self._composite(node)

        operator = p.binary_operator(node)
        if node.type in p.augmented_types or operator not in ("", "="):
            current = self.expr(left)
            value = self.expr(right)
            kind = (
                NodeKind.CONCATENATION
                if operator.rstrip("=") in p.concat_operators
                else NodeKind.COMPOSITE
            )
            combined = self.emit(kind, node, operands=(current, value))
            self.bind(left, combined, declaration=False)
            return combined

        hint = node_text(left) if left.type in p.identifier_types else None
        value = self.expr(right, name_hint=hint)
        self.bind(left, value, declaration=False)
        return value

    def bind(self, target: Node, value_id: int, declaration: bool, weak: bool = False) -> None:
        """Emit ASSIGNMENT nodes defining every name in `target` from `value_id`."""
        p = self.p
        target = p.unwrap(target)
        t = target.type
        if t in p.identifier_types or t in p.member_types or t in p.subscript_types:
            path = self._path(target)
            if path is None:
                self.expr(target)
                return
            self.emit(
                NodeKind.ASSIGNMENT,
                target,
                value=path,
                operands=(value_id,),
                declaration=declaration,
                weak=weak or t in p.subscript_types,
            )
            return

        for c in p.named(target):
            if c.type == "pair_pattern":
                c = child(c, "value")
            elif c.type in ("object_assignment_pattern", "assignment_pattern"):
                c = child(c, "left")
            elif c.type in ("rest_pattern", "list_splat_pattern", "dictionary_splat_pattern"):
                inner = p.named(c)
                if not inner:
                    continue
                c = inner[0]
            if c is None or _is_type(c.type):
                continue
            self.bind(c, value_id, declaration, weak)
