"""
Orthrus SAST - static taint analysis for web applications

Finds unsanitized flows of user input into dangerous operations (SQL,
shell, file system, outbound HTTP, HTML, deserializers) in Python,
JavaScript and Java sources.
"""

__version__ = "1.0.0"
__author__ = "Orthrus Team"

from orthrus.core.engine import ScanEngine
from orthrus.core.errors import InternalGraphError, OrthrusError, ParseError, RuleLoadError
from orthrus.core.pipeline import scan_unit
from orthrus.models.finding import Finding, ScanResult, UnitResult
from orthrus.models.program import SourceUnit
from orthrus.rules.loader import load_rules
from orthrus.rules.ruleset import RuleSet

__all__ = [
    "__version__",
    "Finding",
    "InternalGraphError",
    "OrthrusError",
    "ParseError",
    "RuleLoadError",
    "RuleSet",
    "ScanEngine",
    "ScanResult",
    "SourceUnit",
    "UnitResult",
    "load_rules",
    "scan_unit",
]
