"""Tests for the reporters."""

from __future__ import annotations

import json
from io import StringIO
from pathlib import Path

import pytest
from rich.console import Console

from orthrus.models.base import CodeLocation, Severity
from orthrus.models.finding import Finding, ScanResult, TraceStep
from orthrus.reporting import (
    BaseReporter,
    ConsoleReporter,
    JSONReporter,
    ReportConfig,
    ReporterRegistry,
    ReportMetadata,
    SARIFReporter,
)


def make_finding(rule_id="SQLI", severity=Severity.CRITICAL, confidence=0.9, line=10, interprocedural=False):
    path = Path("src/app.py")
    steps = (
        TraceStep(
            node_id=3,
            location=CodeLocation(path, 4, 12),
            code_snippet='request.args.get("name")',
            description="call request.args.get",
            step_type="source",
        ),
        TraceStep(
            node_id=7,
            location=CodeLocation(path, 6, 5),
            code_snippet="query",
            description="identifier query",
            step_type="propagation",
            interprocedural=interprocedural,
        ),
        TraceStep(
            node_id=9,
            location=CodeLocation(path, line, 5, end_line=line, end_column=26),
            code_snippet="cursor.execute(query)",
            description="call cursor.execute",
            step_type="sink",
        ),
    )
    return Finding(
        rule_id=rule_id,
        title="SQL Injection" if rule_id == "SQLI" else rule_id,
        severity=severity,
        confidence=confidence,
        path=steps,
        message="User input reaches a SQL query",
        remediation="Use bind parameters",
        cwe="CWE-89" if rule_id == "SQLI" else None,
        interprocedural_hops=1 if interprocedural else 0,
    )


@pytest.fixture
def scan_result() -> ScanResult:
    """Scan result with two findings and one unit error."""
    result = ScanResult(
        repository="test-repo",
        files_scanned=3,
        lines_scanned=120,
        sources_found=2,
        sinks_found=2,
        sanitizers_found=1,
        rules_loaded=10,
    )
    result.findings = [
        make_finding(),
        make_finding(rule_id="SSRF", severity=Severity.LOW, confidence=0.5, line=20, interprocedural=True),
    ]
    result.errors.append(
        {"file": "src/broken.py", "line": 2, "phase": "parse", "type": "ParseError", "error": "Syntax error"}
    )
    result.complete()
    return result


@pytest.fixture
def empty_result() -> ScanResult:
    result = ScanResult(repository="empty")
    result.complete()
    return result


class TestReporterRegistry:
    """Test reporter registration and lookup."""

    def test_builtin_formats(self):
        """Should register the three built-in formats."""
        assert {"json", "sarif", "console"} <= set(ReporterRegistry.list_formats())

    def test_create_by_name(self):
        reporter = ReporterRegistry.create("sarif")
        assert isinstance(reporter, SARIFReporter)
        assert reporter.file_extension == ".sarif"

    def test_unknown_format(self):
        """Should reject a format nothing registered."""
        assert ReporterRegistry.get("html") is None
        with pytest.raises(ValueError, match="Unknown report format: html"):
            ReporterRegistry.create("html")

    def test_register_custom(self):
        """Should accept a reporter added with the decorator."""

        @ReporterRegistry.register("lines")
        class LinesReporter(BaseReporter):
            file_extension = ".lines"

            def generate(self, scan_result):
                return "\n".join(f.rule_id for f in scan_result.findings)

        try:
            assert ReporterRegistry.get("lines") is LinesReporter
            assert LinesReporter.format_name == "lines"
        finally:
            ReporterRegistry._reporters.pop("lines", None)


class TestFilterFindings:
    """Test report-time filtering."""

    def test_no_filter(self, scan_result):
        reporter = JSONReporter()
        assert reporter.filter_findings(scan_result.findings) == scan_result.findings

    def test_min_severity(self, scan_result):
        """Should drop findings below the minimum severity."""
        reporter = JSONReporter(ReportConfig(min_severity="high"))
        assert [f.rule_id for f in reporter.filter_findings(scan_result.findings)] == ["SQLI"]

    def test_min_confidence(self, scan_result):
        reporter = JSONReporter(ReportConfig(min_confidence=0.6))
        assert [f.rule_id for f in reporter.filter_findings(scan_result.findings)] == ["SQLI"]

    def test_max_findings(self, scan_result):
        reporter = JSONReporter(ReportConfig(max_findings=1))
        assert len(reporter.filter_findings(scan_result.findings)) == 1


class TestJSONReporter:
    """Test JSON output."""

    def test_structure(self, scan_result):
        """Should emit metadata, summary, findings and errors."""
        report = json.loads(JSONReporter(metadata=ReportMetadata(tool_version="9.9")).generate(scan_result))

        assert report["metadata"]["tool"]["version"] == "9.9"
        assert report["metadata"]["scan"]["repository"] == "test-repo"
        assert report["metadata"]["scan"]["status"] == "completed"
        assert report["summary"]["total_findings"] == 2
        assert report["summary"]["by_severity"] == {"critical": 1, "low": 1}
        assert report["summary"]["by_rule"] == {"SQLI": 1, "SSRF": 1}
        assert report["summary"]["tagging"] == {"sources": 2, "sinks": 2, "sanitizers": 1}
        assert report["errors"][0]["phase"] == "parse"
        assert "warnings" not in report

    def test_finding_fields(self, scan_result):
        report = json.loads(JSONReporter().generate(scan_result))
        finding = report["findings"][0]

        assert finding["rule_id"] == "SQLI"
        assert finding["line_start"] == 10
        assert finding["source"] == {
            "file": str(Path("src/app.py")),
            "line": 4,
            "description": "call request.args.get",
        }
        assert finding["sink"]["line"] == 10
        assert finding["cwe_description"] == "SQL Injection"
        assert [step["step_type"] for step in finding["path"]] == ["source", "propagation", "sink"]
        assert finding["confidence_level"] == "critical"

    def test_without_trace(self, scan_result):
        report = json.loads(JSONReporter(ReportConfig(include_trace=False)).generate(scan_result))
        assert "path" not in report["findings"][0]

    def test_without_snippets(self, scan_result):
        report = json.loads(JSONReporter(ReportConfig(include_code_snippets=False)).generate(scan_result))
        assert all(step["code_snippet"] is None for step in report["findings"][0]["path"])

    def test_warnings_included(self, empty_result):
        empty_result.warnings.append("Scan cancelled; 2 unit(s) not scanned")
        report = json.loads(JSONReporter().generate(empty_result))
        assert report["warnings"] == ["Scan cancelled; 2 unit(s) not scanned"]

    def test_write(self, scan_result, temp_dir):
        """Should write the report and create parent directories."""
        output = temp_dir / "reports" / "scan.json"
        path = JSONReporter().write(scan_result, output)

        assert path == output
        assert json.loads(output.read_text())["summary"]["files_scanned"] == 3


class TestSARIFReporter:
    """Test SARIF 2.1.0 output."""

    def test_document(self, scan_result):
        sarif = json.loads(SARIFReporter().generate(scan_result))

        assert sarif["version"] == "2.1.0"
        assert "sarif-schema-2.1.0" in sarif["$schema"]
        assert len(sarif["runs"]) == 1

    def test_results(self, scan_result):
        """Should map findings to results located at the sink."""
        run = json.loads(SARIFReporter().generate(scan_result))["runs"][0]
        result = run["results"][0]

        assert result["ruleId"] == "SQLI"
        assert result["level"] == "error"
        assert result["message"]["text"] == "User input reaches a SQL query"
        region = result["locations"][0]["physicalLocation"]["region"]
        assert region == {"startLine": 10, "startColumn": 5, "endLine": 10, "endColumn": 26}
        assert result["fingerprints"]["primaryLocationLineHash"] == scan_result.findings[0].id
        assert run["results"][1]["level"] == "note"

    def test_code_flow(self, scan_result):
        """Should describe the path source first, marking call boundaries."""
        run = json.loads(SARIFReporter().generate(scan_result))["runs"][0]
        locations = run["results"][1]["codeFlows"][0]["threadFlows"][0]["locations"]

        assert [loc["kinds"] for loc in locations] == [["source"], ["propagation"], ["sink"]]
        assert locations[1]["properties"] == {"interprocedural": True}
        snippet = locations[0]["location"]["physicalLocation"]["region"]["snippet"]["text"]
        assert snippet == 'request.args.get("name")'

    def test_rules_from_findings(self, scan_result):
        driver = json.loads(SARIFReporter().generate(scan_result))["runs"][0]["tool"]["driver"]
        assert [rule["id"] for rule in driver["rules"]] == ["SQLI", "SSRF"]
        assert driver["rules"][0]["properties"] == {"cwe": ["CWE-89"]}

    def test_rules_from_rule_set(self, scan_result, rules):
        """Should describe every rule in the set when one is given."""
        driver = json.loads(SARIFReporter(rules=rules).generate(scan_result))["runs"][0]["tool"]["driver"]
        assert {rule["id"] for rule in driver["rules"]} == set(rules.ids)

    def test_invocation(self, scan_result):
        invocation = json.loads(SARIFReporter().generate(scan_result))["runs"][0]["invocations"][0]

        assert invocation["executionSuccessful"] is True
        assert invocation["properties"]["filesScanned"] == 3
        notification = invocation["toolExecutionNotifications"][0]
        assert notification["message"]["text"] == "ParseError: Syntax error"
        assert notification["locations"][0]["physicalLocation"]["region"]["startLine"] == 2

    def test_artifacts(self, scan_result):
        run = json.loads(SARIFReporter().generate(scan_result))["runs"][0]
        assert run["artifacts"] == [{"location": {"uri": "src/app.py"}}]

    def test_empty_result(self, empty_result):
        run = json.loads(SARIFReporter().generate(empty_result))["runs"][0]
        assert run["results"] == []
        assert "artifacts" not in run


class TestConsoleReporter:
    """Test Rich console output."""

    @pytest.fixture
    def console(self):
        return Console(file=StringIO(), width=200, color_system=None)

    def test_generate(self, scan_result, console):
        """Should render findings, trace and errors as text."""
        output = ConsoleReporter(console=console).generate(scan_result)

        assert "Scan Report" in output
        assert "SQLI: SQL Injection (CWE-89)" in output
        assert "src/app.py:10" in output.replace("\\", "/")
        assert "Confidence: 90% (critical)" in output
        assert "(call boundary)" in output
        assert "Fix: Use bind parameters" in output
        assert "Syntax error" in output

    def test_no_findings(self, empty_result, console):
        output = ConsoleReporter(console=console).generate(empty_result)
        assert "No vulnerabilities found!" in output

    def test_display_writes_to_console(self, empty_result, console):
        empty_result.warnings.append("Scan cancelled; 1 unit(s) not scanned")
        ConsoleReporter(console=console).display(empty_result)
        assert "Scan cancelled; 1 unit(s) not scanned" in console.file.getvalue()


class TestReportConfig:
    """Test report settings."""

    def test_from_settings(self):
        from orthrus.core.config import OrthrusConfig

        settings = OrthrusConfig(reporting={"min_severity": "medium", "include_trace": False}).reporting
        config = ReportConfig.from_settings(settings)

        assert config.min_severity == "medium"
        assert config.severity_threshold is Severity.MEDIUM
        assert config.include_trace is False

    def test_no_threshold(self):
        assert ReportConfig().severity_threshold is None

    def test_emit_to_stream(self, scan_result):
        stream = StringIO()
        JSONReporter().emit(scan_result, stream)
        assert json.loads(stream.getvalue())["schema_version"] == 1
