"""
Console reporter.

Renders a scan for a terminal with Rich: a header panel, a statistics
table, then each finding with its source-to-sink trace as a tree.
"""

from __future__ import annotations

from collections import Counter
from typing import Any, Optional

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.tree import Tree

from orthrus.models.base import Severity
from orthrus.models.finding import Finding, ScanResult, TraceStep
from orthrus.reporting.base import BaseReporter, ReportConfig, ReportMetadata, ReporterRegistry
from orthrus.rules.ruleset import RuleSet

SEVERITY_STYLES: dict[Severity, str] = {
    Severity.CRITICAL: "bold red",
    Severity.HIGH: "red",
    Severity.MEDIUM: "yellow",
    Severity.LOW: "dim",
    Severity.INFO: "dim",
}

STATUS_STYLES = {"completed": "green", "failed": "red", "cancelled": "yellow", "running": "yellow"}


@ReporterRegistry.register("console")
class ConsoleReporter(BaseReporter):
    """Human-readable terminal output."""

    file_extension = ".txt"

    def __init__(
        self,
        config: Optional[ReportConfig] = None,
        metadata: Optional[ReportMetadata] = None,
        rules: Optional[RuleSet] = None,
        console: Optional[Console] = None,
    ) -> None:
        super().__init__(config, metadata, rules)
        self.console = console or Console()

    def generate(self, scan_result: ScanResult) -> str:
        """Render to a string instead of the terminal."""
        with self.console.capture() as capture:
            self.display(scan_result)
        return capture.get()

    def display(self, scan_result: ScanResult) -> None:
        findings = self.filter_findings(scan_result.findings)

        self.console.print(self._header(scan_result))
        self.console.print(self._statistics(scan_result, findings))
        self.console.print()

        if findings:
            self.console.print(self._severity_breakdown(findings))
            self.console.print()
            for index, finding in enumerate(findings, 1):
                self._print_finding(index, finding)
        else:
            self.console.print("[bold green]No vulnerabilities found![/]")

        self._print_list("Errors", [_describe_error(err) for err in scan_result.errors])
        self._print_list("Warnings", [escape(w) for w in scan_result.warnings])

    def _header(self, scan_result: ScanResult) -> Panel:
        style = STATUS_STYLES.get(scan_result.status, "white")
        lines = [
            f"[bold]{self.metadata.tool_name}[/] Scan Report",
            "",
            f"Target: {escape(scan_result.repository)}",
            f"Scan ID: {scan_result.scan_id}",
            f"Status: [{style}]{scan_result.status.upper()}[/]",
            f"Duration: {scan_result.duration_seconds or 0.0:.2f}s",
        ]
        return Panel.fit("\n".join(lines), title="Scan Summary", border_style=style)

    @staticmethod
    def _statistics(scan_result: ScanResult, findings: list[Finding]) -> Table:
        table = Table(title="Scan Statistics")
        table.add_column("Metric", style="cyan")
        table.add_column("Value", justify="right")

        rows = [
            ("Files Scanned", scan_result.files_scanned),
            ("Lines Analyzed", f"{scan_result.lines_scanned:,}"),
            ("Rules Loaded", scan_result.rules_loaded),
            ("Sources Tagged", scan_result.sources_found),
            ("Sinks Tagged", scan_result.sinks_found),
            ("Sanitizers Tagged", scan_result.sanitizers_found),
            ("Total Findings", len(findings)),
        ]
        for metric, value in rows:
            table.add_row(metric, str(value))
        if scan_result.errors:
            table.add_row("Units Failed", str(len(scan_result.errors)), style="yellow")
        return table

    @staticmethod
    def _severity_breakdown(findings: list[Finding]) -> Table:
        counts = Counter(f.severity for f in findings)
        table = Table(title="Findings by Severity")
        table.add_column("Severity", style="cyan")
        table.add_column("Count", justify="right")
        for severity in Severity:
            if counts[severity]:
                table.add_row(severity.value.upper(), str(counts[severity]), style=SEVERITY_STYLES[severity])
        return table

    def _print_finding(self, index: int, finding: Finding) -> None:
        style = SEVERITY_STYLES.get(finding.severity, "white")
        cwe = f" ({finding.cwe})" if finding.cwe else ""
        out = self.console.print

        out(
            f"[bold]{index}. [{style}]{finding.severity.value.upper()}[/] "
            f"{finding.rule_id}: {escape(finding.title)}{cwe}[/]"
        )
        if finding.message:
            out(f"   {escape(finding.message)}")
        out(
            f"   [dim]Location:[/] {escape(str(finding.file_path))}:{finding.line_start}"
            f"  [dim]Confidence:[/] {finding.confidence:.0%} ({finding.confidence_level.value})"
        )

        if self.config.include_trace:
            trace = Tree("[dim]Trace:[/]")
            for step in finding.path:
                trace.add(self._step_label(step))
            out(trace)
        else:
            out(f"   [dim]Source:[/] {escape(finding.source.description)} (line {finding.source.location.line})")
            out(f"   [dim]Sink:[/] {escape(finding.sink.description)} (line {finding.sink.location.line})")

        if finding.remediation:
            out(f"   [dim]Fix:[/] {escape(finding.remediation)}")
        out()

    def _step_label(self, step: TraceStep) -> str:
        label = f"{step.step_type}: {escape(step.description)} (line {step.location.line})"
        if self.config.include_code_snippets and step.code_snippet:
            first_line = step.code_snippet.strip().splitlines()[0] if step.code_snippet.strip() else ""
            label += f"  [cyan]{escape(first_line)}[/]"
        if step.interprocedural:
            label += " [magenta](call boundary)[/]"
        return label

    def _print_list(self, title: str, items: list[str]) -> None:
        if not items:
            return
        self.console.print(f"[bold yellow]{title}:[/]")
        for item in items:
            self.console.print(f"  [yellow]-[/] {item}")
        self.console.print()


def _describe_error(err: dict[str, Any]) -> str:
    location = str(err.get("file", "unknown"))
    if err.get("line"):
        location = f"{location}:{err['line']}"
    return f"{err.get('phase', 'scan')}: {escape(location)}: {escape(str(err.get('error', 'Unknown error')))}"
