"""
Shared enums and value types: severities, taint tags, program node kinds
and source locations, plus the SARIF level and CWE name tables.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Optional


class Severity(Enum):
    """Severity levels for rules and findings."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"

    @classmethod
    def from_string(cls, value: str) -> "Severity":
        """Create Severity from string, case-insensitive."""
        return cls(value.lower())

    @property
    def rank(self) -> int:
        """Numeric rank, 0 being the most severe."""
        return _SEVERITY_ORDER[self]

    def __lt__(self, other: "Severity") -> bool:
        # CRITICAL < HIGH: "more severe" sorts first
        return self.rank < other.rank

    def __le__(self, other: "Severity") -> bool:
        return self.rank <= other.rank

    def at_least(self, threshold: "Severity") -> bool:
        """True if this severity is as severe as `threshold` or more."""
        return self <= threshold


_SEVERITY_ORDER: dict[Severity, int] = {
    Severity.CRITICAL: 0,
    Severity.HIGH: 1,
    Severity.MEDIUM: 2,
    Severity.LOW: 3,
    Severity.INFO: 4,
}


class Tag(Enum):
    """Taint classification of a node under one rule."""

    SOURCE = "source"
    SINK = "sink"
    SANITIZER = "sanitizer"
    PLAIN = "plain"


class NodeKind(Enum):
    """Kinds of nodes in the uniform program model."""

    LITERAL = "literal"
    IDENTIFIER = "identifier"
    CALL = "call"
    ASSIGNMENT = "assignment"
    CONCATENATION = "concatenation"
    PARAMETER = "parameter"
    RETURN = "return"
    FUNCTION = "function"
    BLOCK = "block"
    GUARD = "guard"
    COMPOSITE = "composite"


@dataclass(frozen=True)
class CodeLocation:
    """
    Location in source code.

    Lines and columns are 1-based. The span is copied from the parser
    without adjustment.
    """

    file_path: Path
    line: int
    column: int
    end_line: Optional[int] = None
    end_column: Optional[int] = None

    def __post_init__(self) -> None:
        """Ensure file_path is a Path object."""
        if isinstance(self.file_path, str):
            object.__setattr__(self, "file_path", Path(self.file_path))

    @property
    def line_end(self) -> int:
        """Last line of the span."""
        return self.end_line if self.end_line is not None else self.line

    def __str__(self) -> str:
        return f"{self.file_path}:{self.line}:{self.column}"

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "file_path": str(self.file_path),
            "line": self.line,
            "column": self.column,
            "end_line": self.end_line,
            "end_column": self.end_column,
        }


# SARIF-compatible severity mapping
SARIF_SEVERITY_MAP: dict[Severity, str] = {
    Severity.CRITICAL: "error",
    Severity.HIGH: "error",
    Severity.MEDIUM: "warning",
    Severity.LOW: "note",
    Severity.INFO: "none",
}


def severity_to_sarif(severity: Severity) -> str:
    """Convert Severity to SARIF level."""
    return SARIF_SEVERITY_MAP.get(severity, "warning")


# CWE descriptions for the vulnerability classes in the default catalogue
CWE_DESCRIPTIONS: dict[str, str] = {
    "CWE-89": "SQL Injection",
    "CWE-79": "Cross-site Scripting (XSS)",
    "CWE-78": "OS Command Injection",
    "CWE-22": "Path Traversal",
    "CWE-918": "Server-Side Request Forgery (SSRF)",
    "CWE-502": "Deserialization of Untrusted Data",
    "CWE-352": "Cross-Site Request Forgery (CSRF)",
    "CWE-915": "Mass Assignment",
    "CWE-639": "Authorization Bypass Through User-Controlled Key",
    "CWE-307": "Improper Restriction of Excessive Authentication Attempts",
    "CWE-770": "Allocation of Resources Without Limits or Throttling",
    "CWE-94": "Code Injection",
}


def get_cwe_description(cwe_id: str) -> str:
    """Get description for a CWE ID."""
    return CWE_DESCRIPTIONS.get(cwe_id, f"Unknown ({cwe_id})")
