"""
Reporting module for generating scan outputs in various formats.

Provides reporters for:
- SARIF 2.1.0 (GitHub, Azure DevOps, VS Code integration)
- JSON (programmatic consumption)
- Console (Rich terminal output)
"""

from orthrus.reporting.base import (
    BaseReporter,
    ReportConfig,
    ReporterRegistry,
    ReportMetadata,
)
from orthrus.reporting.console import ConsoleReporter
from orthrus.reporting.json_reporter import JSONReporter
from orthrus.reporting.sarif import SARIFReporter

__all__ = [
    # Base
    "BaseReporter",
    "ReportConfig",
    "ReporterRegistry",
    "ReportMetadata",
    # Reporters
    "ConsoleReporter",
    "JSONReporter",
    "SARIFReporter",
]
