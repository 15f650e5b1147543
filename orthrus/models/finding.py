"""
Finding models for scan output.

These models represent:
- TraceStep: Single node on a source-to-sink path
- Finding: Candidate vulnerability produced by the path evaluator
- UnitError / UnitResult: Outcome of scanning one unit
- ScanResult: Complete scan output
"""

from __future__ import annotations

import hashlib
import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from orthrus.models.base import CodeLocation, Severity, get_cwe_description


@dataclass(frozen=True)
class TraceStep:
    """
    Single step in a vulnerability trace.

    Represents one node on the data flow from source to sink.
    """

    node_id: int
    location: CodeLocation
    code_snippet: str
    description: str
    step_type: str  # "source", "propagation", "sink"
    interprocedural: bool = False  # reached through a call/return binding

    @property
    def is_source(self) -> bool:
        return self.step_type == "source"

    @property
    def is_sink(self) -> bool:
        return self.step_type == "sink"

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "node_id": self.node_id,
            "location": self.location.to_dict(),
            "code_snippet": self.code_snippet,
            "description": self.description,
            "step_type": self.step_type,
            "interprocedural": self.interprocedural,
        }


def confidence_level(confidence: float) -> Severity:
    """Map a confidence score to a level."""
    if confidence >= 0.8:
        return Severity.CRITICAL
    if confidence >= 0.6:
        return Severity.HIGH
    if confidence >= 0.4:
        return Severity.MEDIUM
    return Severity.LOW


@dataclass(frozen=True)
class Finding:
    """
    Candidate vulnerability: a rule matched an unblocked source-to-sink path.

    The path is never empty; it starts at a node tagged SOURCE and ends at
    the sink node, both under `rule_id`.
    """

    rule_id: str
    title: str
    severity: Severity
    confidence: float
    path: tuple[TraceStep, ...]
    message: str = ""
    remediation: str = ""
    cwe: Optional[str] = None
    interprocedural_hops: int = 0

    def __post_init__(self) -> None:
        if not self.path:
            raise ValueError("Finding path must not be empty")
        if isinstance(self.severity, str):
            object.__setattr__(self, "severity", Severity.from_string(self.severity))

    @property
    def source(self) -> TraceStep:
        return self.path[0]

    @property
    def sink(self) -> TraceStep:
        return self.path[-1]

    @property
    def file_path(self) -> Path:
        return self.sink.location.file_path

    @property
    def line_start(self) -> int:
        return self.sink.location.line

    @property
    def line_end(self) -> int:
        return self.sink.location.line_end

    @property
    def confidence_level(self) -> Severity:
        return confidence_level(self.confidence)

    @property
    def dedup_key(self) -> tuple[str, str, int, int]:
        """Rule id plus the sink's file and line span."""
        return (self.rule_id, str(self.file_path), self.line_start, self.line_end)

    @property
    def id(self) -> str:
        """Stable fingerprint; identical across repeated scans."""
        raw = "|".join(str(part) for part in self.dedup_key)
        return hashlib.sha1(raw.encode("utf-8")).hexdigest()[:16]

    @property
    def cwe_description(self) -> str:
        return get_cwe_description(self.cwe) if self.cwe else ""

    @property
    def path_summary(self) -> str:
        """One-line rendering of the path, source first."""
        return " -> ".join(
            f"{step.description} (line {step.location.line})" for step in self.path
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "id": self.id,
            "rule_id": self.rule_id,
            "title": self.title,
            "severity": self.severity.value,
            "file": str(self.file_path),
            "line_start": self.line_start,
            "line_end": self.line_end,
            "message": self.message,
            "path_summary": self.path_summary,
            "confidence": round(self.confidence, 3),
            "confidence_level": self.confidence_level.value,
            "cwe": self.cwe,
            "remediation": self.remediation,
            "interprocedural_hops": self.interprocedural_hops,
            "path": [step.to_dict() for step in self.path],
        }


@dataclass(frozen=True)
class UnitError:
    """A per-unit failure, reported alongside findings from other units."""

    file_path: str
    error_type: str
    message: str
    line: Optional[int] = None
    phase: str = "scan"

    def to_dict(self) -> dict[str, Any]:
        return {
            "file": self.file_path,
            "line": self.line,
            "phase": self.phase,
            "type": self.error_type,
            "error": self.message,
        }


@dataclass
class UnitResult:
    """Outcome of the per-unit pipeline."""

    file_path: Path
    language: Optional[str] = None
    findings: list[Finding] = field(default_factory=list)
    error: Optional[UnitError] = None
    lines: int = 0
    sources_found: int = 0
    sinks_found: int = 0
    sanitizers_found: int = 0
    duration_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class ScanResult:
    """
    Complete scan result.

    Contains all findings and statistics from a scan.
    """

    scan_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    repository: str = ""
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None
    status: str = "running"  # running, completed, cancelled, failed

    findings: list[Finding] = field(default_factory=list)

    # Statistics
    files_scanned: int = 0
    lines_scanned: int = 0
    sources_found: int = 0
    sinks_found: int = 0
    sanitizers_found: int = 0
    rules_loaded: int = 0

    # Timing
    phase_timings: dict[str, float] = field(default_factory=dict)

    # Error tracking
    errors: list[dict[str, Any]] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    metadata: dict[str, Any] = field(default_factory=dict)

    def complete(self, status: str = "completed") -> None:
        """Mark scan as complete."""
        self.completed_at = datetime.now(timezone.utc)
        self.status = status

    @property
    def duration_seconds(self) -> Optional[float]:
        """Get total scan duration in seconds."""
        if self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds()

    def record_unit(self, unit: UnitResult) -> None:
        """Fold one unit's statistics and error into the scan totals."""
        self.files_scanned += 1
        self.lines_scanned += unit.lines
        self.sources_found += unit.sources_found
        self.sinks_found += unit.sinks_found
        self.sanitizers_found += unit.sanitizers_found
        if unit.error is not None:
            self.errors.append(unit.error.to_dict())

    def get_findings_by_severity(self, severity: Severity) -> list[Finding]:
        """Get findings filtered by severity."""
        return [f for f in self.findings if f.severity == severity]

    def get_findings_by_rule(self, rule_id: str) -> list[Finding]:
        """Get findings filtered by rule id."""
        return [f for f in self.findings if f.rule_id == rule_id]

    def summary(self) -> dict[str, Any]:
        """Generate summary statistics."""
        return {
            "scan_id": self.scan_id,
            "repository": self.repository,
            "status": self.status,
            "duration_seconds": self.duration_seconds,
            "files_scanned": self.files_scanned,
            "lines_scanned": self.lines_scanned,
            "rules_loaded": self.rules_loaded,
            "total_findings": len(self.findings),
            "by_severity": {
                s.value: len(self.get_findings_by_severity(s)) for s in Severity
            },
            "by_rule": self._group_by_rule(),
            "errors": len(self.errors),
            "phase_timings": self.phase_timings,
        }

    def _group_by_rule(self) -> dict[str, int]:
        result: dict[str, int] = {}
        for f in self.findings:
            result[f.rule_id] = result.get(f.rule_id, 0) + 1
        return result

    def to_json(self, path: Path) -> None:
        """Serialize to JSON file."""
        data = {
            "scan_id": self.scan_id,
            "repository": self.repository,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "status": self.status,
            "findings": [f.to_dict() for f in self.findings],
            "errors": self.errors,
            "warnings": self.warnings,
            "summary": self.summary(),
            "metadata": self.metadata,
        }
        with open(path, "w") as f:
            json.dump(data, f, indent=2)
