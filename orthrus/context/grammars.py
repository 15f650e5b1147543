"""
Per-language grammar profiles for the source model adapter.

A profile tells the generic tree walker which tree-sitter node types play
which role in its grammar (calls, member access, declarations, loops, ...)
and how to take those nodes apart. The walker itself never looks at a
language name.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

Node = Any  # tree_sitter.Node


def node_text(node: Node) -> str:
    """Source text of a node."""
    return node.text.decode("utf-8", errors="replace")


def child(node: Node, name: str) -> Optional[Node]:
    return node.child_by_field_name(name)


@dataclass
class CallParts:
    """A call site taken apart: `obj.name(args)` or `target(args)`."""

    target: Optional[Node] = None
    obj: Optional[Node] = None
    name: Optional[str] = None
    args: list[tuple[Optional[str], Node]] = field(default_factory=list)
    constructor: bool = False
    extra: list[Node] = field(default_factory=list)


@dataclass
class ParamSpec:
    """One formal parameter."""

    name: Optional[str]
    node: Node
    pattern: Optional[Node] = None
    default: Optional[Node] = None
    annotations: tuple[str, ...] = ()


@dataclass
class FunctionParts:
    name: Optional[str]
    params: list[ParamSpec]
    body: Optional[Node]
    expression_body: bool = False
    annotations: tuple[str, ...] = ()


@dataclass
class LoopParts:
    """for-each loop: `for target in iterable: body`."""

    target: Optional[Node]
    iterable: Optional[Node]
    body: Optional[Node]
    declaration: bool = False


class GrammarProfile:
    """Node-type roles shared by the supported grammars."""

    language: str = ""
    module: str = ""
    extensions: tuple[str, ...] = ()

    comment_types: frozenset[str] = frozenset({"comment"})
    ignored_types: frozenset[str] = frozenset()
    container_types: frozenset[str] = frozenset()
    identifier_types: frozenset[str] = frozenset({"identifier"})
    literal_types: frozenset[str] = frozenset()
    string_types: frozenset[str] = frozenset()
    call_types: frozenset[str] = frozenset()
    function_types: frozenset[str] = frozenset()
    class_types: frozenset[str] = frozenset()
    return_types: frozenset[str] = frozenset({"return_statement"})
    exit_types: frozenset[str] = frozenset(
        {"return_statement", "break_statement", "continue_statement"}
    )
    exit_calls: frozenset[str] = frozenset()
    binary_types: frozenset[str] = frozenset({"binary_expression"})
    concat_operators: frozenset[str] = frozenset({"+"})
    assignment_types: frozenset[str] = frozenset()
    augmented_types: frozenset[str] = frozenset()
    declaration_types: dict[str, bool] = {}
    declarator_type: str = "variable_declarator"
    member_types: dict[str, tuple[str, str]] = {}
    subscript_types: dict[str, tuple[str, str]] = {}
    while_types: frozenset[str] = frozenset({"while_statement", "do_statement"})
    foreach_types: frozenset[str] = frozenset()
    cfor_types: frozenset[str] = frozenset({"for_statement"})
    try_types: frozenset[str] = frozenset({"try_statement"})
    with_types: frozenset[str] = frozenset()
    switch_types: frozenset[str] = frozenset()
    parenthesized_types: frozenset[str] = frozenset({"parenthesized_expression"})
    pattern_types: frozenset[str] = frozenset()
    decorated_types: frozenset[str] = frozenset()
    block_scoped: bool = True

    def named(self, node: Node) -> list[Node]:
        """Named children without comments."""
        return [c for c in node.named_children if c.type not in self.comment_types]

    def unwrap(self, node: Node) -> Node:
        while node.type in self.parenthesized_types:
            inner = self.named(node)
            if len(inner) != 1:
                break
            node = inner[0]
        return node

    # Expressions

    def negation(self, node: Node) -> Optional[Node]:
        """Operand of a logical not, or None."""
        if node.type == "unary_expression":
            op = child(node, "operator")
            if op is not None and op.type == "!":
                return child(node, "argument") or child(node, "operand")
        return None

    def boolean(self, node: Node) -> Optional[tuple[str, Node, Node]]:
        """(`and`|`or`, left, right) for a short-circuit operator, or None."""
        if node.type == "binary_expression":
            op = child(node, "operator")
            if op is not None and op.type in ("&&", "||"):
                return ("and" if op.type == "&&" else "or", child(node, "left"), child(node, "right"))
        return None

    def binary_operator(self, node: Node) -> str:
        op = child(node, "operator")
        return op.type if op is not None else ""

    def string_pieces(self, node: Node) -> tuple[str, list[Node]]:
        """Literal text of a string and its interpolated expressions."""
        return _strip_quotes(node_text(node)), []

    def literal_value(self, node: Node) -> str:
        return node_text(node)

    def split_call(self, node: Node) -> CallParts:
        raise NotImplementedError

    def argument_items(self, args: Optional[Node]) -> list[tuple[Optional[str], Node]]:
        if args is None:
            return []
        return [(None, a) for a in self.named(args)]

    # Statements

    def function_parts(self, node: Node) -> FunctionParts:
        raise NotImplementedError

    def foreach_parts(self, node: Node) -> LoopParts:
        return LoopParts(child(node, "left"), child(node, "right"), child(node, "body"))

    def if_branches(self, node: Node) -> tuple[Node, Node, list[tuple[Optional[Node], Node]]]:
        """(condition, consequence, [(elif condition | None, body), ...])."""
        raise NotImplementedError

    def try_parts(self, node: Node) -> tuple[list[Node], list[Node], list[Node]]:
        """(plain bodies, handler bodies, finally bodies) of a try statement."""
        raise NotImplementedError

    def with_items(self, node: Node) -> tuple[list[tuple[Node, Optional[Node]]], Optional[Node]]:
        return [], None

    def class_body(self, node: Node) -> Optional[Node]:
        return child(node, "body")

    def decorators(self, node: Node) -> tuple[list[Node], Node]:
        """(decorator expressions, definition) of a decorated definition."""
        raise NotImplementedError

    def return_value(self, node: Node) -> Optional[Node]:
        values = self.named(node)
        return values[0] if values else None

    def is_exit_call(self, call_path: Optional[str]) -> bool:
        return call_path in self.exit_calls


def _strip_quotes(raw: str) -> str:
    body = raw.lstrip("rRbBuUfF")
    for quote in ('"""', "'''", '"', "'", "`"):
        if body.startswith(quote) and body.endswith(quote) and len(body) >= 2 * len(quote):
            return body[len(quote):-len(quote)]
    return body


class PythonProfile(GrammarProfile):
    language = "python"
    module = "tree_sitter_python"
    extensions = (".py", ".pyi")

    ignored_types = frozenset(
        {
            "import_statement",
            "import_from_statement",
            "future_import_statement",
            "global_statement",
            "nonlocal_statement",
            "pass_statement",
            "break_statement",
            "continue_statement",
            "ellipsis",
        }
    )
    container_types = frozenset({"module", "block", "expression_statement"})
    literal_types = frozenset({"integer", "float", "true", "false", "none"})
    string_types = frozenset({"string"})
    call_types = frozenset({"call"})
    function_types = frozenset({"function_definition", "lambda"})
    class_types = frozenset({"class_definition"})
    exit_types = frozenset(
        {"return_statement", "raise_statement", "break_statement", "continue_statement"}
    )
    exit_calls = frozenset({"abort", "flask.abort", "exit", "sys.exit", "os._exit"})
    binary_types = frozenset({"binary_operator"})
    concat_operators = frozenset({"+", "%"})
    assignment_types = frozenset({"assignment"})
    augmented_types = frozenset({"augmented_assignment"})
    member_types = {"attribute": ("object", "attribute")}
    subscript_types = {"subscript": ("value", "subscript")}
    while_types = frozenset({"while_statement"})
    foreach_types = frozenset({"for_statement"})
    cfor_types = frozenset()
    with_types = frozenset({"with_statement"})
    switch_types = frozenset({"match_statement"})
    decorated_types = frozenset({"decorated_definition"})
    block_scoped = False
    pattern_types = frozenset({"pattern_list", "tuple_pattern", "list_pattern", "expression_list", "tuple", "list"})

    def negation(self, node: Node) -> Optional[Node]:
        if node.type == "not_operator":
            return child(node, "argument")
        return None

    def boolean(self, node: Node) -> Optional[tuple[str, Node, Node]]:
        if node.type == "boolean_operator":
            op = child(node, "operator")
            kind = op.type if op is not None else ""
            if kind in ("and", "or"):
                return (kind, child(node, "left"), child(node, "right"))
        return None

    def string_pieces(self, node: Node) -> tuple[str, list[Node]]:
        parts: list[str] = []
        interpolations: list[Node] = []
        for piece in node.named_children:
            if piece.type == "string_content":
                parts.append(node_text(piece))
            elif piece.type == "interpolation":
                expr = child(piece, "expression")
                if expr is not None:
                    interpolations.append(expr)
            elif piece.type == "escape_sequence":
                parts.append(node_text(piece))
        if not parts and not interpolations:
            return _strip_quotes(node_text(node)), []
        return "".join(parts), interpolations

    def split_call(self, node: Node) -> CallParts:
        function = child(node, "function")
        args = child(node, "arguments")
        if args is not None and args.type == "generator_expression":
            items = [(None, args)]
        else:
            items = self.argument_items(args)
        if function is not None and function.type == "attribute":
            return CallParts(
                obj=child(function, "object"),
                name=node_text(child(function, "attribute")),
                args=items,
            )
        return CallParts(target=function, args=items)

    def argument_items(self, args: Optional[Node]) -> list[tuple[Optional[str], Node]]:
        items: list[tuple[Optional[str], Node]] = []
        if args is None:
            return items
        for arg in self.named(args):
            if arg.type == "keyword_argument":
                items.append((node_text(child(arg, "name")), child(arg, "value")))
            elif arg.type == "list_splat":
                items.append(("*", self.named(arg)[0]))
            elif arg.type == "dictionary_splat":
                items.append(("**", self.named(arg)[0]))
            else:
                items.append((None, arg))
        return items

    def _parameters(self, params: Optional[Node]) -> list[ParamSpec]:
        specs: list[ParamSpec] = []
        if params is None:
            return specs
        for p in self.named(params):
            if p.type in ("keyword_separator", "positional_separator"):
                continue
            if p.type == "identifier":
                specs.append(ParamSpec(node_text(p), p))
            elif p.type in ("default_parameter", "typed_default_parameter"):
                name = child(p, "name")
                specs.append(ParamSpec(node_text(name), p, default=child(p, "value")))
            elif p.type == "typed_parameter":
                inner = self.named(p)[0]
                if inner.type in ("list_splat_pattern", "dictionary_splat_pattern"):
                    inner = self.named(inner)[0]
                specs.append(ParamSpec(node_text(inner), p))
            elif p.type in ("list_splat_pattern", "dictionary_splat_pattern"):
                specs.append(ParamSpec(node_text(self.named(p)[0]), p))
            else:
                specs.append(ParamSpec(None, p, pattern=p))
        return specs

    def function_parts(self, node: Node) -> FunctionParts:
        params = self._parameters(child(node, "parameters"))
        if node.type == "lambda":
            return FunctionParts(None, params, child(node, "body"), expression_body=True)
        return FunctionParts(node_text(child(node, "name")), params, child(node, "body"))

    def decorators(self, node: Node) -> tuple[list[Node], Node]:
        """(decorator expressions, definition) of a decorated_definition."""
        exprs = [self.named(d)[0] for d in node.named_children if d.type == "decorator"]
        return exprs, child(node, "definition")

    def if_branches(self, node: Node) -> tuple[Node, Node, list[tuple[Optional[Node], Node]]]:
        branches: list[tuple[Optional[Node], Node]] = []
        for alt in node.children_by_field_name("alternative"):
            if alt.type == "elif_clause":
                branches.append((child(alt, "condition"), child(alt, "consequence")))
            else:
                branches.append((None, child(alt, "body")))
        return child(node, "condition"), child(node, "consequence"), branches

    def foreach_parts(self, node: Node) -> LoopParts:
        return LoopParts(child(node, "left"), child(node, "right"), child(node, "body"))

    def try_parts(self, node: Node) -> tuple[list[Node], list[Node], list[Node]]:
        plain = [child(node, "body")]
        handlers: list[Node] = []
        final: list[Node] = []
        for clause in node.named_children:
            if clause.type in ("except_clause", "except_group_clause", "else_clause"):
                handlers.extend(c for c in clause.named_children if c.type == "block")
            elif clause.type == "finally_clause":
                final.extend(c for c in clause.named_children if c.type == "block")
        return plain, handlers, final

    def with_items(self, node: Node) -> tuple[list[tuple[Node, Optional[Node]]], Optional[Node]]:
        items: list[tuple[Node, Optional[Node]]] = []
        for clause in node.named_children:
            if clause.type != "with_clause":
                continue
            for item in self.named(clause):
                value = child(item, "value") or self.named(item)[0]
                if value.type == "as_pattern":
                    alias = child(value, "alias")
                    if alias is not None and alias.type == "as_pattern_target":
                        alias = self.named(alias)[0]
                    items.append((self.named(value)[0], alias))
                else:
                    items.append((value, None))
        return items, child(node, "body")


class JavaScriptProfile(GrammarProfile):
    language = "javascript"
    module = "tree_sitter_javascript"
    extensions = (".js", ".jsx", ".mjs", ".cjs")

    ignored_types = frozenset(
        {
            "import_statement",
            "empty_statement",
            "break_statement",
            "continue_statement",
            "debugger_statement",
            "hash_bang_line",
        }
    )
    container_types = frozenset({"program", "statement_block", "expression_statement", "export_statement"})
    identifier_types = frozenset(
        {
            "identifier",
            "this",
            "super",
            "property_identifier",
            "shorthand_property_identifier",
            "shorthand_property_identifier_pattern",
        }
    )
    literal_types = frozenset({"number", "true", "false", "null", "undefined", "regex"})
    string_types = frozenset({"string", "template_string"})
    call_types = frozenset({"call_expression", "new_expression"})
    function_types = frozenset(
        {
            "function_declaration",
            "generator_function_declaration",
            "function_expression",
            "function",
            "generator_function",
            "arrow_function",
            "method_definition",
        }
    )
    class_types = frozenset({"class_declaration", "class"})
    exit_types = frozenset(
        {"return_statement", "throw_statement", "break_statement", "continue_statement"}
    )
    exit_calls = frozenset({"process.exit"})
    assignment_types = frozenset({"assignment_expression"})
    augmented_types = frozenset({"augmented_assignment_expression"})
    declaration_types = {"lexical_declaration": True, "variable_declaration": False}
    member_types = {"member_expression": ("object", "property")}
    subscript_types = {"subscript_expression": ("object", "index")}
    foreach_types = frozenset({"for_in_statement"})
    switch_types = frozenset({"switch_statement"})
    pattern_types = frozenset({"object_pattern", "array_pattern"})

    def literal_value(self, node: Node) -> str:
        if node.type == "regex":
            pattern = child(node, "pattern")
            if pattern is not None:
                return node_text(pattern)
        return node_text(node)

    def string_pieces(self, node: Node) -> tuple[str, list[Node]]:
        parts: list[str] = []
        substitutions: list[Node] = []
        for piece in node.named_children:
            if piece.type in ("string_fragment", "escape_sequence"):
                parts.append(node_text(piece))
            elif piece.type == "template_substitution":
                substitutions.extend(self.named(piece))
        return "".join(parts), substitutions

    def split_call(self, node: Node) -> CallParts:
        if node.type == "new_expression":
            return CallParts(
                target=child(node, "constructor"),
                args=self.argument_items(child(node, "arguments")),
                constructor=True,
            )
        function = child(node, "function")
        args = child(node, "arguments")
        items = [(None, args)] if args is not None and args.type == "template_string" else self.argument_items(args)
        if function is not None and function.type == "member_expression":
            return CallParts(
                obj=child(function, "object"),
                name=node_text(child(function, "property")),
                args=items,
            )
        return CallParts(target=function, args=items)

    def argument_items(self, args: Optional[Node]) -> list[tuple[Optional[str], Node]]:
        if args is None:
            return []
        items: list[tuple[Optional[str], Node]] = []
        for arg in self.named(args):
            if arg.type == "spread_element":
                items.append(("*", self.named(arg)[0]))
            else:
                items.append((None, arg))
        return items

    def _parameters(self, node: Node) -> list[ParamSpec]:
        single = child(node, "parameter")
        if single is not None:
            return [ParamSpec(node_text(single), single)]
        params = child(node, "parameters")
        specs: list[ParamSpec] = []
        if params is None:
            return specs
        for p in self.named(params):
            if p.type == "identifier":
                specs.append(ParamSpec(node_text(p), p))
            elif p.type == "assignment_pattern":
                left = child(p, "left")
                if left.type == "identifier":
                    specs.append(ParamSpec(node_text(left), p, default=child(p, "right")))
                else:
                    specs.append(ParamSpec(None, p, pattern=left, default=child(p, "right")))
            elif p.type == "rest_pattern":
                inner = self.named(p)[0]
                specs.append(ParamSpec(node_text(inner) if inner.type == "identifier" else None, p))
            else:
                specs.append(ParamSpec(None, p, pattern=p))
        return specs

    def function_parts(self, node: Node) -> FunctionParts:
        name_node = child(node, "name")
        body = child(node, "body")
        expression_body = node.type == "arrow_function" and body is not None and body.type != "statement_block"
        return FunctionParts(
            node_text(name_node) if name_node is not None else None,
            self._parameters(node),
            body,
            expression_body=expression_body,
        )

    def if_branches(self, node: Node) -> tuple[Node, Node, list[tuple[Optional[Node], Node]]]:
        branches: list[tuple[Optional[Node], Node]] = []
        alt = child(node, "alternative")
        if alt is not None:
            branches.append((None, self.named(alt)[0] if alt.type == "else_clause" else alt))
        return child(node, "condition"), child(node, "consequence"), branches

    def foreach_parts(self, node: Node) -> LoopParts:
        kind = child(node, "kind")
        declaration = kind is not None and kind.type in ("let", "const")
        return LoopParts(child(node, "left"), child(node, "right"), child(node, "body"), declaration)

    def try_parts(self, node: Node) -> tuple[list[Node], list[Node], list[Node]]:
        handlers: list[Node] = []
        final: list[Node] = []
        handler = child(node, "handler")
        if handler is not None:
            handlers.append(child(handler, "body"))
        finalizer = child(node, "finalizer")
        if finalizer is not None:
            final.append(child(finalizer, "body"))
        return [child(node, "body")], handlers, final


class JavaProfile(GrammarProfile):
    language = "java"
    module = "tree_sitter_java"
    extensions = (".java",)

    comment_types = frozenset({"line_comment", "block_comment"})
    ignored_types = frozenset(
        {
            "import_declaration",
            "package_declaration",
            "break_statement",
            "continue_statement",
            "modifiers",
            "marker_annotation",
            "annotation",
            ";",
        }
    )
    container_types = frozenset(
        {"program", "block", "class_body", "interface_body", "enum_body", "constructor_body", "expression_statement"}
    )
    identifier_types = frozenset({"identifier", "this", "super"})
    literal_types = frozenset(
        {
            "decimal_integer_literal",
            "hex_integer_literal",
            "octal_integer_literal",
            "binary_integer_literal",
            "decimal_floating_point_literal",
            "hex_floating_point_literal",
            "character_literal",
            "true",
            "false",
            "null_literal",
            "class_literal",
        }
    )
    string_types = frozenset({"string_literal", "text_block"})
    call_types = frozenset({"method_invocation", "object_creation_expression"})
    function_types = frozenset({"method_declaration", "constructor_declaration", "lambda_expression"})
    class_types = frozenset(
        {"class_declaration", "interface_declaration", "enum_declaration", "record_declaration"}
    )
    exit_types = frozenset(
        {"return_statement", "throw_statement", "break_statement", "continue_statement"}
    )
    exit_calls = frozenset({"System.exit"})
    assignment_types = frozenset({"assignment_expression"})
    declaration_types = {"local_variable_declaration": True, "field_declaration": True}
    member_types = {"field_access": ("object", "field")}
    subscript_types = {"array_access": ("array", "index")}
    foreach_types = frozenset({"enhanced_for_statement"})
    with_types = frozenset({"try_with_resources_statement"})
    switch_types = frozenset({"switch_expression", "switch_statement"})

    def string_pieces(self, node: Node) -> tuple[str, list[Node]]:
        raw = node_text(node)
        if node.type == "text_block":
            return raw.strip('"'), []
        return _strip_quotes(raw), []

    def split_call(self, node: Node) -> CallParts:
        args = self.argument_items(child(node, "arguments"))
        if node.type == "object_creation_expression":
            extra = [c for c in node.named_children if c.type == "class_body"]
            return CallParts(target=child(node, "type"), args=args, constructor=True, extra=extra)
        name = node_text(child(node, "name"))
        obj = child(node, "object")
        if obj is None:
            return CallParts(name=name, args=args)
        return CallParts(obj=obj, name=name, args=args)

    def annotations(self, node: Node) -> tuple[str, ...]:
        """Annotation names from a declaration's modifiers."""
        names: list[str] = []
        for mod in node.named_children:
            if mod.type != "modifiers":
                continue
            for ann in mod.named_children:
                if ann.type in ("marker_annotation", "annotation"):
                    names.append(node_text(child(ann, "name")))
        return tuple(names)

    def _parameters(self, params: Optional[Node]) -> list[ParamSpec]:
        specs: list[ParamSpec] = []
        if params is None:
            return specs
        if params.type == "identifier":
            return [ParamSpec(node_text(params), params)]
        for p in self.named(params):
            if p.type == "formal_parameter":
                specs.append(ParamSpec(node_text(child(p, "name")), p, annotations=self.annotations(p)))
            elif p.type == "spread_parameter":
                declarator = next(c for c in p.named_children if c.type == "variable_declarator")
                specs.append(ParamSpec(node_text(child(declarator, "name")), p))
            elif p.type == "identifier":
                specs.append(ParamSpec(node_text(p), p))
        return specs

    def function_parts(self, node: Node) -> FunctionParts:
        if node.type == "lambda_expression":
            body = child(node, "body")
            return FunctionParts(
                None,
                self._parameters(child(node, "parameters")),
                body,
                expression_body=body is not None and body.type != "block",
            )
        return FunctionParts(
            node_text(child(node, "name")),
            self._parameters(child(node, "parameters")),
            child(node, "body"),
            annotations=self.annotations(node),
        )

    def if_branches(self, node: Node) -> tuple[Node, Node, list[tuple[Optional[Node], Node]]]:
        alt = child(node, "alternative")
        branches = [(None, alt)] if alt is not None else []
        return child(node, "condition"), child(node, "consequence"), branches

    def foreach_parts(self, node: Node) -> LoopParts:
        return LoopParts(child(node, "name"), child(node, "value"), child(node, "body"), declaration=True)

    def try_parts(self, node: Node) -> tuple[list[Node], list[Node], list[Node]]:
        handlers: list[Node] = []
        final: list[Node] = []
        for clause in node.named_children:
            if clause.type == "catch_clause":
                handlers.append(child(clause, "body"))
            elif clause.type == "finally_clause":
                final.extend(c for c in clause.named_children if c.type == "block")
        return [child(node, "body")], handlers, final

    def with_items(self, node: Node) -> tuple[list[tuple[Node, Optional[Node]]], Optional[Node]]:
        items: list[tuple[Node, Optional[Node]]] = []
        resources = child(node, "resources")
        if resources is not None:
            for res in self.named(resources):
                value = child(res, "value")
                if value is not None:
                    items.append((value, child(res, "name")))
                else:
                    items.append((res, None))
        return items, child(node, "body")


PROFILES: dict[str, GrammarProfile] = {
    profile.language: profile
    for profile in (PythonProfile(), JavaScriptProfile(), JavaProfile())
}


def get_profile(language: str) -> Optional[GrammarProfile]:
    return PROFILES.get(language)
