"""
Uniform program model produced by the source model adapter.

A parsed unit becomes a flat, ordered sequence of ProgramNode objects.
Node ids equal their position in the sequence; synthetic nodes added by
the taint graph builder continue the numbering.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, Optional

from orthrus.models.base import CodeLocation, NodeKind


@dataclass(frozen=True)
class ProgramNode:
    """
    A point in program structure.

    `value` holds the literal text (LITERAL), access path (IDENTIFIER),
    callee name (CALL), assigned name (ASSIGNMENT) or declared name
    (FUNCTION, PARAMETER). `operands` are the ids of the nodes whose
    values this node consumes, in source order.
    """

    id: int
    kind: NodeKind
    location: CodeLocation
    value: Optional[str] = None
    operands: tuple[int, ...] = ()
    scope: Optional[int] = None
    text: str = ""
    synthetic: bool = False

    # CALL
    receiver: Optional[int] = None
    arguments: tuple[Optional[int], ...] = ()
    keywords: tuple[Optional[str], ...] = ()

    # PARAMETER
    index: Optional[int] = None

    # RETURN
    function: Optional[int] = None

    # GUARD
    block: Optional[int] = None
    negated: bool = False
    exits: bool = False

    # BLOCK
    conditional: bool = False

    # ASSIGNMENT, PARAMETER
    declaration: bool = False
    weak: bool = False

    # FUNCTION, PARAMETER: decorator or annotation names
    annotations: tuple[str, ...] = ()

    @property
    def label(self) -> str:
        """Short human-readable label for traces."""
        if self.value:
            return f"{self.kind.value} {self.value}"
        return self.kind.value

    @property
    def arg_count(self) -> int:
        return len(self.arguments)

    def __str__(self) -> str:
        return f"{self.kind.value}#{self.id}@{self.location.line}:{self.location.column}"


@dataclass
class ProgramModel:
    """Flat node sequence for one parsed unit."""

    file_path: Path
    language: str
    nodes: list[ProgramNode] = field(default_factory=list)
    index: dict[int, int] = field(default_factory=dict)
    line_count: int = 0

    def __iter__(self) -> Iterator[ProgramNode]:
        return iter(self.nodes)

    def __len__(self) -> int:
        return len(self.nodes)

    def get(self, node_id: int) -> ProgramNode:
        """Look up a node by id."""
        return self.nodes[self.index[node_id]]

    def of_kind(self, kind: NodeKind) -> list[ProgramNode]:
        """All nodes of one kind, in program order."""
        return [n for n in self.nodes if n.kind == kind]


@dataclass(frozen=True)
class SourceUnit:
    """
    One independently scanned unit: a file on disk or an in-memory buffer.

    When `content` is None the file at `path` is read on demand.
    """

    path: Path
    content: Optional[str] = None
    language: Optional[str] = None

    def __post_init__(self) -> None:
        if isinstance(self.path, str):
            object.__setattr__(self, "path", Path(self.path))

    @classmethod
    def from_string(cls, content: str, language: str, name: str = "<memory>") -> "SourceUnit":
        """Build a unit from an in-memory buffer."""
        return cls(path=Path(name), content=content, language=language)
