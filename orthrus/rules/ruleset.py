"""
Vulnerability rules and syntactic node classification.

A Rule pairs source, sink and sanitizer patterns for one vulnerability
class. A RuleSet is the immutable, ordered collection a scan runs with;
it is passed explicitly to every scan call.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Iterable, Iterator, NamedTuple, Optional

from orthrus.core.errors import RuleLoadError
from orthrus.models.base import NodeKind, Severity, Tag
from orthrus.models.program import ProgramNode

if TYPE_CHECKING:
    from orthrus.analysis.taint_graph import TaintGraph

DEFAULT_MESSAGE = "{title}: {source} (line {source_line}) reaches {sink} (line {sink_line})"


class PatternTarget(Enum):
    """Which node kind a pattern is matched against."""

    CALL = "call"  # callee name of a CALL
    ACCESS = "access"  # access path of an IDENTIFIER
    PARAMETER = "parameter"  # name of a PARAMETER
    ANNOTATION = "annotation"  # annotation of a PARAMETER or of its function


_TARGET_KINDS: dict[PatternTarget, frozenset[NodeKind]] = {
    PatternTarget.CALL: frozenset({NodeKind.CALL}),
    PatternTarget.ACCESS: frozenset({NodeKind.IDENTIFIER}),
    PatternTarget.PARAMETER: frozenset({NodeKind.PARAMETER}),
    PatternTarget.ANNOTATION: frozenset({NodeKind.PARAMETER}),
}


def _suffixes(dotted: str) -> list[str]:
    parts = dotted.split(".")
    return [".".join(parts[i:]) for i in range(len(parts))]


def _prefixes(dotted: str) -> list[str]:
    parts = dotted.split(".")
    return [".".join(parts[:i]) for i in range(len(parts), 0, -1)]


@dataclass(frozen=True)
class NodePattern:
    """
    One syntactic predicate.

    `pattern` must fully match the callee name (or one of its dotted
    suffixes), the access path (or one of its dotted prefixes), the
    parameter name or an annotation name, depending on `target`.
    `literal_argument` is searched in the string literals passed to a call
    (arguments or receiver).
    """

    pattern: str
    target: PatternTarget = PatternTarget.CALL
    arg_count: Optional[int] = None
    arguments: Optional[tuple[int, ...]] = None
    literal_argument: Optional[str] = None
    languages: tuple[str, ...] = ()
    _regex: Any = field(init=False, repr=False, compare=False)
    _literal: Any = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_regex", re.compile(self.pattern))
        object.__setattr__(
            self,
            "_literal",
            re.compile(self.literal_argument) if self.literal_argument is not None else None,
        )

    def applies_to(self, language: str) -> bool:
        return not self.languages or language in self.languages

    def matches(self, node: ProgramNode, graph: "TaintGraph") -> bool:
        if node.kind not in _TARGET_KINDS[self.target] or not self.applies_to(graph.language):
            return False

        if self.target is PatternTarget.ANNOTATION:
            names = node.annotations
            if node.function is not None and node.function in graph:
                names = names + graph.node(node.function).annotations
            return any(
                self._regex.fullmatch(candidate)
                for name in names
                for candidate in _suffixes(name)
            )
        if not node.value:
            return False
        if self.target is PatternTarget.PARAMETER:
            return self._regex.fullmatch(node.value) is not None
        if self.target is PatternTarget.ACCESS:
            return any(self._regex.fullmatch(p) for p in _prefixes(node.value))

        if not any(self._regex.fullmatch(s) for s in _suffixes(node.value)):
            return False
        if self.arg_count is not None and node.arg_count != self.arg_count:
            return False
        if self._literal is not None:
            return self._literal_operand(node, graph)
        return True

    def _literal_operand(self, node: ProgramNode, graph: "TaintGraph") -> bool:
        for operand in (node.receiver, *node.arguments):
            if operand is None:
                continue
            literal = graph.node(operand)
            if literal.kind is NodeKind.LITERAL and literal.value is not None:
                if self._literal.search(literal.value):
                    return True
        return False

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"pattern": self.pattern, "target": self.target.value}
        if self.arg_count is not None:
            data["arg_count"] = self.arg_count
        if self.arguments is not None:
            data["arguments"] = list(self.arguments)
        if self.literal_argument is not None:
            data["literal_argument"] = self.literal_argument
        if self.languages:
            data["languages"] = list(self.languages)
        return data


class RuleTag(NamedTuple):
    rule_id: str
    tag: Tag


@dataclass(frozen=True)
class Rule:
    """One vulnerability class."""

    id: str
    title: str
    severity: Severity
    sources: tuple[NodePattern, ...]
    sinks: tuple[NodePattern, ...]
    sanitizers: tuple[NodePattern, ...] = ()
    remediation: str = ""
    description: str = ""
    message: str = DEFAULT_MESSAGE
    cwe: Optional[str] = None
    owasp: Optional[str] = None
    languages: tuple[str, ...] = ()

    def applies_to(self, language: str) -> bool:
        return not self.languages or language in self.languages

    def classify(self, node: ProgramNode, graph: "TaintGraph") -> Tag:
        """Tag of `node` under this rule; SINK beats SANITIZER beats SOURCE."""
        if not self.applies_to(graph.language):
            return Tag.PLAIN
        for tag, patterns in (
            (Tag.SINK, self.sinks),
            (Tag.SANITIZER, self.sanitizers),
            (Tag.SOURCE, self.sources),
        ):
            if any(p.matches(node, graph) for p in patterns):
                return tag
        return Tag.PLAIN

    def sink_positions(self, node: ProgramNode, graph: "TaintGraph") -> Optional[frozenset[int]]:
        """
        Argument positions through which taint must enter this sink.

        None means any incoming flow counts.
        """
        positions: set[int] = set()
        for pattern in self.sinks:
            if not pattern.matches(node, graph):
                continue
            if pattern.arguments is None:
                return None
            positions.update(pattern.arguments)
        return frozenset(positions)

    def render_message(self, source: ProgramNode, sink: ProgramNode) -> str:
        return self.message.format(
            title=self.title,
            rule_id=self.id,
            source=source.value or source.kind.value,
            sink=sink.value or sink.kind.value,
            source_line=source.location.line,
            sink_line=sink.location.line,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "severity": self.severity.value,
            "cwe": self.cwe,
            "owasp": self.owasp,
            "languages": list(self.languages),
            "description": self.description,
            "remediation": self.remediation,
            "message": self.message,
            "sources": [p.to_dict() for p in self.sources],
            "sinks": [p.to_dict() for p in self.sinks],
            "sanitizers": [p.to_dict() for p in self.sanitizers],
        }


class RuleSet:
    """
    Immutable, ordered collection of rules keyed by id.

    Raises:
        RuleLoadError: two rules share an id
    """

    def __init__(self, rules: Iterable[Rule] = ()):
        by_id: dict[str, Rule] = {}
        for rule in rules:
            if rule.id in by_id:
                raise RuleLoadError(f"Duplicate rule id: {rule.id}")
            by_id[rule.id] = rule
        self._rules = by_id

    def __iter__(self) -> Iterator[Rule]:
        return iter(self._rules.values())

    def __len__(self) -> int:
        return len(self._rules)

    def __contains__(self, rule_id: object) -> bool:
        return rule_id in self._rules

    def __eq__(self, other: object) -> bool:
        return isinstance(other, RuleSet) and list(self) == list(other)

    def __repr__(self) -> str:
        return f"RuleSet({', '.join(self._rules)})"

    @property
    def ids(self) -> list[str]:
        return list(self._rules)

    def get(self, rule_id: str) -> Optional[Rule]:
        return self._rules.get(rule_id)

    def merge(self, other: "RuleSet") -> "RuleSet":
        """New RuleSet; rules of `other` replace rules with the same id."""
        merged = dict(self._rules)
        merged.update(other._rules)
        return RuleSet(merged.values())

    def without(self, rule_ids: Iterable[str]) -> "RuleSet":
        dropped = set(rule_ids)
        return RuleSet(r for r in self if r.id not in dropped)

    def for_language(self, language: str) -> list[Rule]:
        return [r for r in self if r.applies_to(language)]

    def classify(self, node: ProgramNode, graph: "TaintGraph") -> set[RuleTag]:
        """Every (rule, tag) pair under which `node` is not PLAIN."""
        tags: set[RuleTag] = set()
        for rule in self:
            tag = rule.classify(node, graph)
            if tag is not Tag.PLAIN:
                tags.add(RuleTag(rule.id, tag))
        return tags


class TagIndex:
    """Per-rule tags of one graph's nodes."""

    def __init__(self) -> None:
        self._by_node: dict[int, dict[str, Tag]] = {}
        self._by_rule: dict[str, dict[Tag, list[int]]] = {}

    def add(self, node_id: int, rule_tag: RuleTag) -> None:
        self._by_node.setdefault(node_id, {})[rule_tag.rule_id] = rule_tag.tag
        self._by_rule.setdefault(rule_tag.rule_id, {}).setdefault(rule_tag.tag, []).append(node_id)

    def tag(self, node_id: int, rule_id: str) -> Tag:
        return self._by_node.get(node_id, {}).get(rule_id, Tag.PLAIN)

    def tags(self, node_id: int) -> set[RuleTag]:
        return {RuleTag(rule_id, tag) for rule_id, tag in self._by_node.get(node_id, {}).items()}

    def nodes(self, rule_id: str, tag: Tag) -> list[int]:
        return list(self._by_rule.get(rule_id, {}).get(tag, ()))

    def count(self, tag: Tag) -> int:
        """Distinct nodes carrying `tag` under at least one rule."""
        return sum(1 for tags in self._by_node.values() if tag in tags.values())


def tag_graph(graph: "TaintGraph", rules: RuleSet) -> TagIndex:
    """Classify every node of a finished graph."""
    index = TagIndex()
    for node in graph.nodes():
        for rule_tag in sorted(rules.classify(node, graph), key=lambda rt: rt.rule_id):
            index.add(node.id, rule_tag)
    return index
