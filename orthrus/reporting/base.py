"""
Reporter base class and format registry.

A reporter turns a ScanResult into one document. Filtering by severity,
confidence and count happens here so every format shows the same findings.
"""

from __future__ import annotations

import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import IO, Any, ClassVar, Optional

from orthrus import __version__
from orthrus.models.base import Severity
from orthrus.models.finding import Finding, ScanResult
from orthrus.rules.ruleset import RuleSet


@dataclass
class ReportConfig:
    """What a report shows."""

    include_code_snippets: bool = True
    include_trace: bool = True
    max_findings: Optional[int] = None
    min_severity: Optional[str] = None
    min_confidence: float = 0.0

    @classmethod
    def from_settings(cls, reporting: Any) -> "ReportConfig":
        """Build from the `reporting` section of OrthrusConfig."""
        return cls(
            include_code_snippets=reporting.include_code_snippets,
            include_trace=reporting.include_trace,
            min_severity=reporting.min_severity,
            min_confidence=reporting.min_confidence,
        )

    @property
    def severity_threshold(self) -> Optional[Severity]:
        if not self.min_severity:
            return None
        return Severity.from_string(self.min_severity)


@dataclass
class ReportMetadata:
    """Tool identity stamped into every report."""

    tool_name: str = "Orthrus SAST"
    tool_version: str = __version__
    information_uri: str = "https://github.com/orthrus-sast/orthrus"
    generated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class BaseReporter(ABC):
    """
    One output format.

    Subclasses set `format_name` and `file_extension` and implement
    `generate`. Passing the scan's RuleSet lets a format describe every
    rule, not only the ones that fired.
    """

    format_name: ClassVar[str] = ""
    file_extension: ClassVar[str] = ".txt"

    def __init__(
        self,
        config: Optional[ReportConfig] = None,
        metadata: Optional[ReportMetadata] = None,
        rules: Optional[RuleSet] = None,
    ) -> None:
        self.config = config or ReportConfig()
        self.metadata = metadata or ReportMetadata()
        self.rules = rules

    @abstractmethod
    def generate(self, scan_result: ScanResult) -> str:
        """Render the whole report as text."""
        ...

    def default_path(self, directory: Path) -> Path:
        return directory / f"orthrus-results{self.file_extension}"

    def write(self, scan_result: ScanResult, output_path: Path) -> Path:
        """Write the report, creating parent directories; returns the path."""
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(self.generate(scan_result), encoding="utf-8")
        return output_path

    def emit(self, scan_result: ScanResult, stream: Optional[IO[str]] = None) -> None:
        """Write the report to a text stream (stdout by default)."""
        stream = stream or sys.stdout
        stream.write(self.generate(scan_result))
        stream.write("\n")

    def filter_findings(self, findings: list[Finding]) -> list[Finding]:
        """
        Apply the severity, confidence and count limits.

        Input order is kept, so the engine's ranking survives; the count limit
        is applied last.
        """
        threshold = self.config.severity_threshold
        selected = [
            f
            for f in findings
            if (threshold is None or f.severity.at_least(threshold))
            and f.confidence >= self.config.min_confidence
        ]
        if self.config.max_findings is not None:
            del selected[self.config.max_findings:]
        return selected


class ReporterRegistry:
    """Maps format names to reporter classes."""

    _reporters: dict[str, type[BaseReporter]] = {}

    @classmethod
    def register(cls, name: str) -> Any:
        """Class decorator adding a reporter under `name`."""

        def decorator(reporter_class: type[BaseReporter]) -> type[BaseReporter]:
            reporter_class.format_name = name
            cls._reporters[name] = reporter_class
            return reporter_class

        return decorator

    @classmethod
    def get(cls, name: str) -> Optional[type[BaseReporter]]:
        return cls._reporters.get(name)

    @classmethod
    def list_formats(cls) -> list[str]:
        return sorted(cls._reporters)

    @classmethod
    def create(cls, name: str, **kwargs: Any) -> BaseReporter:
        """
        Instantiate the reporter for `name`.

        Raises:
            ValueError: no reporter is registered under that name
        """
        reporter_class = cls._reporters.get(name)
        if reporter_class is None:
            raise ValueError(f"Unknown report format: {name} (available: {', '.join(cls.list_formats())})")
        return reporter_class(**kwargs)
