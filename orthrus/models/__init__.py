"""Data models for Orthrus SAST."""

from orthrus.models.base import (
    CodeLocation,
    NodeKind,
    Severity,
    Tag,
    get_cwe_description,
    severity_to_sarif,
)
from orthrus.models.finding import (
    Finding,
    ScanResult,
    TraceStep,
    UnitError,
    UnitResult,
    confidence_level,
)
from orthrus.models.program import ProgramModel, ProgramNode, SourceUnit

__all__ = [
    # Base types
    "CodeLocation",
    "NodeKind",
    "Severity",
    "Tag",
    "get_cwe_description",
    "severity_to_sarif",
    # Program model
    "ProgramModel",
    "ProgramNode",
    "SourceUnit",
    # Findings
    "Finding",
    "ScanResult",
    "TraceStep",
    "UnitError",
    "UnitResult",
    "confidence_level",
]
